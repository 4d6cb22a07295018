"""
Form-type feature pipelines.

Every extractor takes one <form> element. FORM_PIPELINES is the canonical
ordered list used for training, inference and model loading.
"""

from collections import Counter
from typing import Any

from bs4 import Tag

from formsift.classifier.pipeline import FeaturePipeline, char_pipeline, dict_pipeline, word_pipeline
from formsift.htmlutil.document import (
    FIELD_TAGS,
    get_attr,
    get_field_type,
    get_text,
)
from formsift.vectorizer.stop_words import ENGLISH_STOP_WORDS

LINK_STOP_WORDS = frozenset({"and", "or", "of"})

SUBMIT_TYPES = frozenset({"submit", "image"})


def _element_signature(elem: Tag) -> str:
    if elem.name == "input":
        return f"input type={get_field_type(elem)}"
    return elem.name


def form_elements(form: Tag) -> dict[str, Any]:
    """Counts of element signatures plus a few form-level attributes."""
    elems = form.find_all(FIELD_TAGS)
    counts = Counter(_element_signature(e) for e in elems)

    features: dict[str, Any] = {f"{sig} count": float(n) for sig, n in counts.items()}
    features["method"] = get_attr(form, "method").strip().lower() or "get"
    features["field_count"] = float(len(elems))
    features["password_count"] = float(counts.get("input type=password", 0))
    features["email_count"] = float(counts.get("input type=email", 0))
    features["hidden_count"] = float(counts.get("input type=hidden", 0))
    features["has_textarea"] = "textarea" in counts
    features["has_select"] = "select" in counts
    return features


def _is_submit(elem: Tag) -> bool:
    if elem.name == "button":
        return get_attr(elem, "type").strip().lower() in ("", "submit")
    return elem.name == "input" and get_field_type(elem) in SUBMIT_TYPES


def submit_text(form: Tag) -> str:
    """Visible text and value of submit buttons."""
    parts: list[str] = []
    for elem in form.find_all(["input", "button"]):
        if not _is_submit(elem):
            continue
        parts.append(get_attr(elem, "value"))
        if elem.name == "button":
            parts.append(get_text(elem))
        else:
            parts.append(get_attr(elem, "alt"))
    return " ".join(p for p in parts if p)


def links_text(form: Tag) -> str:
    return " ".join(t for t in (get_text(a) for a in form.find_all("a")) if t)


def label_text(form: Tag) -> str:
    return " ".join(t for t in (get_text(label) for label in form.find_all("label")) if t)


def form_url(form: Tag) -> str:
    return get_attr(form, "action").strip().lower()


def form_css(form: Tag) -> str:
    return f"{get_attr(form, 'class')} {get_attr(form, 'id')}".strip().lower()


def _visible_inputs(form: Tag) -> list[Tag]:
    return [
        e
        for e in form.find_all(FIELD_TAGS)
        if not (e.name == "input" and get_field_type(e) == "hidden")
    ]


def input_names(form: Tag) -> str:
    return " ".join(n for n in (get_attr(e, "name") for e in _visible_inputs(form)) if n).lower()


def input_css(form: Tag) -> str:
    parts: list[str] = []
    for elem in _visible_inputs(form):
        parts.extend(p for p in (get_attr(elem, "class"), get_attr(elem, "id")) if p)
    return " ".join(parts).lower()


def input_placeholders(form: Tag) -> str:
    return " ".join(
        p for p in (get_attr(e, "placeholder") for e in _visible_inputs(form)) if p
    )


FORM_PIPELINES: tuple[FeaturePipeline, ...] = (
    dict_pipeline("form elements", form_elements),
    word_pipeline("submit text", submit_text, min_df=1),
    word_pipeline("links text", links_text, stop_words=LINK_STOP_WORDS),
    word_pipeline("label text", label_text, stop_words=ENGLISH_STOP_WORDS),
    char_pipeline("form url", form_url, ngram_range=(5, 6)),
    char_pipeline("form css", form_css, ngram_range=(4, 5)),
    char_pipeline("input names", input_names, ngram_range=(5, 6)),
    char_pipeline("input css", input_css, ngram_range=(4, 5)),
    word_pipeline("input placeholders", input_placeholders),
)
