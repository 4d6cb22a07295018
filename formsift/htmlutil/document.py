"""
HTML document service for formsift.

Wraps BeautifulSoup to answer the structural questions the feature
pipelines ask: which forms a page holds, which fields of a form get a
field-type label, and the page-level text regions, structural counts and
error/soft-404 keyword indicators used by the page type model.
"""

import re
from typing import Any

from bs4 import BeautifulSoup, Tag

from formsift.errors import HTMLParseError
from formsift.utils.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# Body text scan limit for the keyword indicators
ERROR_SCAN_CHARS = 5000

# (feature suffix, lower-case keyword)
ERROR_PATTERNS: tuple[tuple[str, str], ...] = (
    ("404", "404"),
    ("not_found", "not found"),
    ("page_not_found", "page not found"),
    ("does_not_exist", "does not exist"),
    ("no_longer_available", "no longer available"),
    ("access_denied", "access denied"),
    ("forbidden", "forbidden"),
    ("unauthorized", "unauthorized"),
    ("server_error", "server error"),
    ("internal_error", "internal server error"),
    ("captcha", "captcha"),
    ("cloudflare", "cloudflare"),
    ("challenge", "challenge"),
    ("verify_human", "verify you are human"),
    ("domain_parking", "domain parking"),
    ("parked_domain", "parked domain"),
    ("coming_soon", "coming soon"),
    ("under_construction", "under construction"),
    ("maintenance", "maintenance"),
    ("launching_soon", "launching soon"),
    ("welcome_nginx", "welcome to nginx"),
    ("apache_default", "apache2 default page"),
    ("iis_default", "iis windows server"),
    ("index_of", "index of /"),
    ("directory_listing", "directory listing"),
    ("waf_block", "blocked"),
    ("bot_detection", "bot"),
    ("admin_panel", "admin"),
    ("dashboard", "dashboard"),
    ("login", "log in"),
    ("sign_in", "sign in"),
)

NON_VISIBLE_TAGS = ["script", "style", "noscript"]
FIELD_TAGS = ["input", "select", "textarea", "button"]


# =============================================================================
# Parsing
# =============================================================================


def load_html(html: str) -> BeautifulSoup:
    """Parse an HTML string.

    Args:
        html: Raw HTML.

    Returns:
        Parsed document.

    Raises:
        HTMLParseError: If the input is not a string or cannot be parsed.
    """
    if not isinstance(html, str):
        raise HTMLParseError(
            "HTML input must be a string",
            details={"type": type(html).__name__},
        )
    try:
        doc = BeautifulSoup(html, "html.parser")
    except (AssertionError, ValueError) as e:
        raise HTMLParseError(f"cannot parse HTML: {e}") from e

    # Script and style bodies are not visible text
    for elem in doc.find_all(NON_VISIBLE_TAGS):
        elem.decompose()
    return doc


def load_form(form_html: str) -> Tag:
    """Parse a stored form fragment and return its <form> element.

    Fragments holding only the form's inner HTML are wrapped in a <form>.
    """
    doc = load_html(form_html)
    form = doc.find("form")
    if form is None:
        logger.debug("Wrapping form fragment", length=len(form_html))
        form = load_html(f"<form>{form_html}</form>").find("form")
    return form


def get_forms(doc: BeautifulSoup | Tag) -> list[Tag]:
    """Return all <form> elements in document order."""
    return doc.find_all("form")


def get_text(elem: Tag | None) -> str:
    """Whitespace-normalized text content of an element."""
    if elem is None:
        return ""
    return _WHITESPACE_RE.sub(" ", elem.get_text(" ", strip=True)).strip()


def get_attr(elem: Tag, name: str) -> str:
    """Attribute value as a string ('' when absent); multi-valued attributes are joined."""
    value = elem.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


# =============================================================================
# Form fields
# =============================================================================


def get_field_type(elem: Tag) -> str:
    """Input type for <input>, else the tag name."""
    if elem.name == "input":
        return get_attr(elem, "type").strip().lower() or "text"
    return elem.name


def get_fields_to_annotate(form: Tag) -> list[Tag]:
    """Named fields that receive a field-type label, in document order.

    Hidden inputs are skipped and only the first element per name is kept,
    so names map one-to-one onto positions of the field sequence.
    """
    fields: list[Tag] = []
    seen: set[str] = set()
    for elem in form.find_all(FIELD_TAGS):
        name = get_attr(elem, "name")
        if not name or name in seen:
            continue
        if elem.name == "input" and get_field_type(elem) == "hidden":
            continue
        seen.add(name)
        fields.append(elem)
    return fields


def get_field_label(form: Tag, elem: Tag) -> str:
    """Text of the <label> attached to a field (by for= or by nesting)."""
    elem_id = get_attr(elem, "id")
    if elem_id:
        label = form.find("label", attrs={"for": elem_id})
        if label is not None:
            return get_text(label)
    parent = elem.find_parent("label")
    if parent is not None:
        return get_text(parent)
    return ""


# =============================================================================
# Page text regions
# =============================================================================


def get_page_title(doc: BeautifulSoup) -> str:
    """Return the <title> text content."""
    return get_text(doc.find("title"))


def _get_meta(doc: BeautifulSoup, name: str) -> str:
    meta = doc.find("meta", attrs={"name": re.compile(f"^{name}$", re.IGNORECASE)})
    if meta is None:
        return ""
    return get_attr(meta, "content").strip()


def get_meta_description(doc: BeautifulSoup) -> str:
    """Content of <meta name="description"> (name matched case-insensitively)."""
    return _get_meta(doc, "description")


def _joined_text(elems: list[Tag]) -> str:
    return " ".join(text for text in (get_text(e) for e in elems) if text)


def get_headings(doc: BeautifulSoup) -> str:
    """Concatenated text of all h1-h6 elements."""
    return _joined_text(doc.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]))


def get_h1_text(doc: BeautifulSoup) -> str:
    """Concatenated text of all <h1> elements."""
    return _joined_text(doc.find_all("h1"))


def get_nav_text(doc: BeautifulSoup) -> str:
    """Concatenated text of all <nav> elements."""
    return _joined_text(doc.find_all("nav"))


def get_page_css(doc: BeautifulSoup) -> str:
    """Class and id attributes of <body> and <main> elements."""
    parts: list[str] = []
    for elem in doc.find_all(["body", "main"]):
        for attr in ("class", "id"):
            value = get_attr(elem, attr)
            if value:
                parts.append(value)
    return " ".join(parts)


def get_body_text(doc: BeautifulSoup, limit: int | None = None) -> str:
    """Visible body text, truncated to ``limit`` characters when given."""
    body = doc.find("body")
    text = get_text(body if body is not None else doc)
    if limit is not None and len(text) > limit:
        text = text[:limit]
    return text


# =============================================================================
# Structural features
# =============================================================================


def _flag(value: bool) -> float:
    return 1.0 if value else 0.0


def link_count_bucket(n: int) -> float:
    if n == 0:
        return 0.0
    if n <= 5:
        return 1.0
    if n <= 20:
        return 2.0
    if n <= 50:
        return 3.0
    return 4.0


def img_count_bucket(n: int) -> float:
    if n == 0:
        return 0.0
    if n <= 3:
        return 1.0
    if n <= 10:
        return 2.0
    return 3.0


def content_length_bucket(n: int) -> float:
    if n < 100:
        return 0.0
    if n < 500:
        return 1.0
    if n < 2000:
        return 2.0
    if n < 10000:
        return 3.0
    return 4.0


def get_page_structure(doc: BeautifulSoup) -> dict[str, Any]:
    """Structural boolean features and bucketed counts, plus error indicators."""
    form_count = len(doc.find_all("form"))
    features: dict[str, Any] = {
        "has_form": _flag(form_count > 0),
        "form_count": float(form_count),
    }
    for tag in ("nav", "header", "footer", "article", "aside", "main", "table", "video", "iframe"):
        features[f"has_{tag}"] = _flag(doc.find(tag) is not None)

    password = doc.find("input", attrs={"type": re.compile("^password$", re.IGNORECASE)})
    features["has_password"] = _flag(password is not None)

    features["link_count_bucket"] = link_count_bucket(len(doc.find_all("a")))
    features["img_count_bucket"] = img_count_bucket(len(doc.find_all("img")))
    features["content_length_bucket"] = content_length_bucket(len(get_body_text(doc)))
    features["heading_count"] = float(len(doc.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])))

    features.update(get_error_indicators(doc))
    return features


def get_error_indicators(doc: BeautifulSoup) -> dict[str, float]:
    """Keyword indicators for error, soft-404, challenge and parked pages.

    Each pattern is checked case-insensitively against the title, the h1
    text and the first ERROR_SCAN_CHARS characters of the body text.
    """
    title = get_page_title(doc).lower()
    h1 = get_h1_text(doc).lower()
    body = get_body_text(doc, ERROR_SCAN_CHARS).lower()

    features: dict[str, float] = {}
    for name, keyword in ERROR_PATTERNS:
        features[f"title_has_{name}"] = _flag(keyword in title)
        features[f"h1_has_{name}"] = _flag(keyword in h1)
        features[f"body_has_{name}"] = _flag(keyword in body)
    return features
