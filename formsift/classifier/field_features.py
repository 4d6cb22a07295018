"""
Per-field attribute maps for field-type sequence tagging.

A form becomes a sequence of fields (see get_fields_to_annotate). Each field
gets a feature dict describing the element itself and its neighbours; the
form type is added both as a plain attribute and conjoined with the field's
input type and name tokens so the same field can be tagged differently in
different kinds of forms. features_to_attributes flattens a feature dict
into the ``attribute -> value`` map consumed by the CRF.
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

from bs4 import Tag

from formsift.htmlutil.document import (
    get_attr,
    get_field_label,
    get_field_type,
    get_fields_to_annotate,
)

_CAMEL_RE = re.compile(r"([a-z])([A-Z])")
_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_DIGITS_RE = re.compile(r"\d+")

MAX_TOKENS = 5


def tokenize(value: str) -> list[str]:
    """Split an attribute value into lower-case tokens (camelCase aware)."""
    value = _CAMEL_RE.sub(r"\1 \2", value)
    value = _DIGITS_RE.sub("0", value.lower())
    return [t for t in _SPLIT_RE.split(value) if t][:MAX_TOKENS]


def _position_bucket(index: int) -> str:
    if index < 3:
        return str(index)
    if index < 6:
        return "3-5"
    return "6+"


def _elem_features(elem: Tag, form: Tag) -> dict[str, Any]:
    field_type = get_field_type(elem)
    name_tokens = tokenize(get_attr(elem, "name"))
    features: dict[str, Any] = {
        "tag": elem.name,
        "type": field_type,
        "name": name_tokens,
        "id": tokenize(get_attr(elem, "id")),
        "class": tokenize(get_attr(elem, "class")),
        "placeholder": tokenize(get_attr(elem, "placeholder")),
        "label": tokenize(get_field_label(form, elem)),
        "required": elem.has_attr("required"),
        "has_value": bool(get_attr(elem, "value")),
    }
    autocomplete = get_attr(elem, "autocomplete").strip().lower()
    if autocomplete:
        features["autocomplete"] = autocomplete
    if field_type in ("submit", "button", "reset", "image"):
        features["value"] = tokenize(get_attr(elem, "value"))
    return features


def get_field_features(
    form: Tag,
    form_type: str,
    fields: Sequence[Tag],
    index: int,
) -> dict[str, Any]:
    """Feature dict of ``fields[index]`` within its form."""
    elem = fields[index]
    features = _elem_features(elem, form)
    field_type = features["type"]

    features["position"] = _position_bucket(index)
    features["is_first"] = index == 0
    features["is_last"] = index == len(fields) - 1

    if index > 0:
        prev = fields[index - 1]
        features["prev_type"] = get_field_type(prev)
        features["prev_name"] = tokenize(get_attr(prev, "name"))
    else:
        features["prev_type"] = "<start>"
    if index + 1 < len(fields):
        nxt = fields[index + 1]
        features["next_type"] = get_field_type(nxt)
        features["next_name"] = tokenize(get_attr(nxt, "name"))
    else:
        features["next_type"] = "<end>"

    features["form_type"] = form_type
    features["form_type_input_type"] = f"{form_type}|{field_type}"
    features["form_type_name"] = [f"{form_type}|{t}" for t in features["name"]]
    return features


def get_form_features(
    form: Tag,
    form_type: str,
    fields: Sequence[Tag] | None = None,
) -> list[dict[str, Any]]:
    """Feature dicts for every field to annotate, in document order."""
    if fields is None:
        fields = get_fields_to_annotate(form)
    return [get_field_features(form, form_type, fields, i) for i in range(len(fields))]


def features_to_attributes(features: Mapping[str, Any]) -> dict[str, float]:
    """Flatten a feature dict into CRF attributes.

    Strings give ``key=value: 1.0``, lists give one such attribute per item,
    true booleans give ``key: 1.0`` and numbers give ``key: value``.
    False booleans, zeros and None are dropped.
    """
    attrs: dict[str, float] = {}
    for key, value in features.items():
        if value is None:
            continue
        if isinstance(value, bool):
            if value:
                attrs[key] = 1.0
        elif isinstance(value, int | float):
            if value:
                attrs[key] = float(value)
        elif isinstance(value, str):
            attrs[f"{key}={value}"] = 1.0
        elif isinstance(value, list | tuple):
            for item in value:
                attrs[f"{key}={item}"] = 1.0
        else:
            raise TypeError(f"unsupported feature value for {key!r}: {type(value).__name__}")
    return attrs


def form_sequence(form: Tag, form_type: str, fields: Sequence[Tag] | None = None) -> list[dict[str, float]]:
    """CRF input sequence for a form."""
    return [features_to_attributes(f) for f in get_form_features(form, form_type, fields)]
