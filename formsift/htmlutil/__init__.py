"""
HTML document service: parsing, form/field enumeration and page features.
"""

from formsift.htmlutil.document import (
    ERROR_PATTERNS,
    get_attr,
    get_body_text,
    get_error_indicators,
    get_field_label,
    get_field_type,
    get_fields_to_annotate,
    get_forms,
    get_h1_text,
    get_headings,
    get_meta_description,
    get_nav_text,
    get_page_css,
    get_page_structure,
    get_page_title,
    get_text,
    load_form,
    load_html,
)

__all__ = [
    "ERROR_PATTERNS",
    "load_html",
    "load_form",
    "get_forms",
    "get_fields_to_annotate",
    "get_field_label",
    "get_field_type",
    "get_attr",
    "get_text",
    "get_page_title",
    "get_meta_description",
    "get_headings",
    "get_h1_text",
    "get_nav_text",
    "get_page_css",
    "get_body_text",
    "get_page_structure",
    "get_error_indicators",
]
