"""
Page-type feature pipelines.

Page extractors read a PageContext: the parsed document, the form-type
labels predicted (or annotated) for the forms on the page, and the page URL.
PAGE_PIPELINES is the canonical ordered list of the 9 page pipelines.
"""

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from formsift.classifier.pipeline import FeaturePipeline, char_pipeline, dict_pipeline, word_pipeline
from formsift.htmlutil.document import (
    get_h1_text,
    get_headings,
    get_meta_description,
    get_nav_text,
    get_page_css,
    get_page_structure,
    get_page_title,
)

KNOWN_FORM_TYPES = (
    "login",
    "registration",
    "search",
    "password/login recovery",
    "contact/comment",
    "mailing list",
    "order/checkout",
    "other",
)

_DIGITS_RE = re.compile(r"\d+")
_URL_SEPARATORS_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class PageContext:
    """One page sample for the page-type pipelines."""

    doc: BeautifulSoup
    form_labels: Sequence[str] = field(default_factory=tuple)
    url: str = ""


def form_type_key(form_type: str) -> str:
    """Feature key for a form type: ``/`` and spaces become ``_``."""
    return "has_" + form_type.replace("/", "_").replace(" ", "_") + "_form"


def dominant_form_type(labels: Sequence[str]) -> str:
    """Most frequent label; ties go to known-type order, then first-seen order."""
    if not labels:
        return "none"
    counts = Counter(labels)
    order = {t: i for i, t in enumerate(KNOWN_FORM_TYPES)}
    first_seen = {label: i for i, label in reversed(list(enumerate(labels)))}
    return min(
        counts,
        key=lambda t: (-counts[t], order.get(t, len(order)), first_seen[t]),
    )


def form_type_summary(labels: Sequence[str]) -> dict[str, Any]:
    """Summary of the form classification results on one page."""
    present = set(labels)
    features: dict[str, Any] = {
        "form_count": float(len(labels)),
        "has_any_form": 1.0 if labels else 0.0,
        "dominant_type": dominant_form_type(labels),
    }
    for form_type in KNOWN_FORM_TYPES:
        features[form_type_key(form_type)] = 1.0 if form_type in present else 0.0
    return features


def normalize_url_part(part: str) -> str:
    """Lower-case, collapse digit runs to ``0`` and separators to spaces."""
    part = _DIGITS_RE.sub("0", part.lower())
    return _URL_SEPARATORS_RE.sub(" ", part).strip()


def page_url_text(url: str) -> str:
    """Normalized ``path query`` text of a URL ('' when there is no URL)."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    return normalize_url_part(parts.path) + " " + normalize_url_part(parts.query)


PAGE_PIPELINES: tuple[FeaturePipeline, ...] = (
    dict_pipeline("page structure", lambda ctx: get_page_structure(ctx.doc)),
    word_pipeline("page title", lambda ctx: get_page_title(ctx.doc)),
    word_pipeline("page meta desc", lambda ctx: get_meta_description(ctx.doc)),
    word_pipeline("page headings", lambda ctx: get_headings(ctx.doc)),
    word_pipeline("page h1", lambda ctx: get_h1_text(ctx.doc)),
    char_pipeline("page css", lambda ctx: get_page_css(ctx.doc), ngram_range=(4, 5)),
    word_pipeline("page nav text", lambda ctx: get_nav_text(ctx.doc)),
    dict_pipeline("form type summary", lambda ctx: form_type_summary(ctx.form_labels)),
    char_pipeline("page url", lambda ctx: page_url_text(ctx.url), ngram_range=(5, 6)),
)
