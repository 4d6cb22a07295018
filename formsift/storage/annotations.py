"""
Annotation store.

Two data folders are supported:

- forms folder: ``config.json`` with the form and field type schemas and
  ``index.json`` mapping each HTML file to its form/field annotations.
- pages folder: ``config.json`` with the page type schema and
  ``index.json`` mapping each HTML file to its URL and page type.

Annotations carry both the short type codes stored in the index and the
full type names from the schema; models are trained on full names.
"""

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import tldextract

from formsift.errors import FormsiftError, TrainingDataError
from formsift.htmlutil.document import get_forms, load_html
from formsift.utils.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _extractor() -> tldextract.TLDExtract:
    # Bundled suffix snapshot only; never fetch the public suffix list.
    return tldextract.TLDExtract(suffix_list_urls=())


def get_domain(url: str) -> str:
    """Registered domain of a URL (e.g. ``example.co.uk``).

    Falls back to the lower-cased host when no suffix is recognized.
    """
    host = url
    if "://" in url:
        parsed = urlparse(url)
        host = parsed.netloc or parsed.path
    host = host.split("@")[-1].split(":")[0].lower()

    ext = _extractor()(host)
    domain = ".".join(p for p in (ext.domain, ext.suffix) if p)
    return domain or host


# =============================================================================
# Schema
# =============================================================================


@dataclass
class AnnotationSchema:
    """Type codes of one annotation dimension (forms, fields or pages)."""

    types: dict[str, str] = field(default_factory=dict)  # full -> short
    types_inv: dict[str, str] = field(default_factory=dict)  # short -> full
    na_value: str = ""
    skip_value: str = ""

    @classmethod
    def from_config(cls, data: dict[str, Any]) -> "AnnotationSchema":
        entries = data.get("types", [])
        return cls(
            types={e["full"]: e["short"] for e in entries},
            types_inv={e["short"]: e["full"] for e in entries},
            na_value=data.get("NA_value", ""),
            skip_value=data.get("skip_value", ""),
        )

    def full_name(self, short: str) -> str:
        return self.types_inv.get(short, short)

    def is_dropped(self, short: str, drop_na: bool, drop_skipped: bool) -> bool:
        if drop_na and self.na_value and short == self.na_value:
            return True
        return bool(drop_skipped and self.skip_value and short == self.skip_value)


def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise TrainingDataError(f"cannot read {path.name}: {e}", details={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise TrainingDataError(f"cannot decode {path.name}: {e}", details={"path": str(path)}) from e


# =============================================================================
# Forms
# =============================================================================


@dataclass
class FormAnnotation:
    """One annotated form."""

    form_html: str
    url: str
    type: str
    type_full: str
    field_types: dict[str, str] = field(default_factory=dict)
    field_types_full: dict[str, str] = field(default_factory=dict)
    form_annotated: bool = True
    fields_annotated: bool = False
    path: str = ""


class Storage:
    """Forms data folder."""

    def __init__(self, folder: str | Path):
        self.folder = Path(folder)

    @property
    def index_path(self) -> Path:
        return self.folder / "index.json"

    def exists(self) -> bool:
        return self.index_path.is_file()

    def get_schemas(self) -> tuple[AnnotationSchema, AnnotationSchema]:
        """Form type and field type schemas."""
        config = _read_json(self.folder / "config.json")
        return (
            AnnotationSchema.from_config(config.get("form_types", {})),
            AnnotationSchema.from_config(config.get("field_types", {})),
        )

    def get_index(self) -> dict[str, dict[str, Any]]:
        return _read_json(self.index_path)

    def iter_annotations(
        self,
        drop_na: bool = True,
        drop_skipped: bool = True,
    ) -> list[FormAnnotation]:
        """Load all annotated forms, in sorted file order.

        Files whose number of forms differs from the index are skipped.

        Raises:
            TrainingDataError: If the folder, config or index is missing.
        """
        if not self.exists():
            raise TrainingDataError(
                "forms index not found", details={"path": str(self.index_path)}
            )
        form_schema, field_schema = self.get_schemas()
        index = self.get_index()

        annotations: list[FormAnnotation] = []
        for path in sorted(index):
            info = index[path]
            try:
                html = (self.folder / path).read_text(encoding="utf-8")
                forms = get_forms(load_html(html))
            except (OSError, UnicodeDecodeError, FormsiftError) as e:
                logger.warning("Cannot read annotation file", path=path, error=str(e))
                continue

            types = info.get("forms", [])
            if len(forms) != len(types):
                logger.warning(
                    "Form count mismatch, skipping file",
                    path=path,
                    expected=len(types),
                    found=len(forms),
                )
                continue

            fields = info.get("fields") or [{} for _ in types]
            form_annotated = info.get("form_annotated") or [True] * len(types)
            fields_annotated = info.get("fields_annotated") or [False] * len(types)

            for i, (form, tp) in enumerate(zip(forms, types, strict=True)):
                if form_schema.is_dropped(tp, drop_na, drop_skipped):
                    continue
                field_types = {
                    name: ft
                    for name, ft in (fields[i] if i < len(fields) else {}).items()
                    if not field_schema.is_dropped(ft, drop_na, drop_skipped)
                }
                annotations.append(
                    FormAnnotation(
                        form_html=str(form),
                        url=info.get("url", ""),
                        type=tp,
                        type_full=form_schema.full_name(tp),
                        field_types=field_types,
                        field_types_full={n: field_schema.full_name(ft) for n, ft in field_types.items()},
                        form_annotated=bool(form_annotated[i]) if i < len(form_annotated) else True,
                        fields_annotated=bool(fields_annotated[i]) if i < len(fields_annotated) else False,
                        path=path,
                    )
                )

        logger.info("Form annotations loaded", folder=str(self.folder), count=len(annotations))
        return annotations


# =============================================================================
# Pages
# =============================================================================


@dataclass
class PageAnnotation:
    """One annotated page."""

    html: str
    url: str
    type: str
    type_full: str
    path: str = ""


class PageStorage:
    """Pages data folder."""

    def __init__(self, folder: str | Path):
        self.folder = Path(folder)

    @property
    def index_path(self) -> Path:
        return self.folder / "index.json"

    def exists(self) -> bool:
        return self.index_path.is_file()

    def get_schema(self) -> AnnotationSchema:
        config = _read_json(self.folder / "config.json")
        return AnnotationSchema.from_config(config.get("page_types", {}))

    def get_index(self) -> dict[str, dict[str, Any]]:
        return _read_json(self.index_path)

    def iter_annotations(
        self,
        drop_na: bool = True,
        drop_skipped: bool = True,
    ) -> list[PageAnnotation]:
        """Load all annotated pages sorted by (domain, path)."""
        schema = self.get_schema()
        index = self.get_index()

        ordered = sorted(index.items(), key=lambda item: (get_domain(item[1].get("url", "")), item[0]))
        annotations: list[PageAnnotation] = []
        for path, info in ordered:
            tp = info.get("page_type", "")
            if schema.is_dropped(tp, drop_na, drop_skipped):
                continue
            try:
                html = (self.folder / path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot read page annotation file", path=path, error=str(e))
                continue
            annotations.append(
                PageAnnotation(
                    html=html,
                    url=info.get("url", ""),
                    type=tp,
                    type_full=schema.full_name(tp),
                    path=path,
                )
            )

        logger.info("Page annotations loaded", folder=str(self.folder), count=len(annotations))
        return annotations
