"""
Public classifier facade.

Example:
    clf = Classifier.load("model.json")
    for form in clf.extract_forms(html):
        print(form.type, form.fields)

    page = clf.extract_page_type(html, url="https://example.com/login")
    print(page.type)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from formsift.classifier.classifier import FormFieldClassifier, FormResult as _FormResult
from formsift.classifier.model_io import load_model, save_model
from formsift.errors import ClassifierNotInitializedError, ModelNotAvailableError
from formsift.training import train as _train
from formsift.utils.config import get_settings


@dataclass
class FormResult:
    type: str
    fields: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.fields:
            out["fields"] = self.fields
        return out


@dataclass
class FormResultProba:
    type: dict[str, float]
    fields: dict[str, dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.fields:
            out["fields"] = self.fields
        return out


@dataclass
class PageResult:
    type: str
    forms: list[FormResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "forms": [f.to_dict() for f in self.forms]}


@dataclass
class PageResultProba:
    type: dict[str, float]
    forms: list[FormResultProba] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "forms": [f.to_dict() for f in self.forms]}


def _plain(result: _FormResult) -> FormResult:
    return FormResult(type=result.result.form, fields=result.result.fields or {})


def _proba(result: _FormResult) -> FormResultProba:
    return FormResultProba(type=result.proba.form, fields=result.proba.fields or {})


class Classifier:
    """Form, field and page type classifier."""

    def __init__(self, fc: FormFieldClassifier | None = None):
        self.fc = fc

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Classifier":
        """Load a model document (default: ``inference.model_path``)."""
        return cls(load_model(path or get_settings().inference.model_path))

    @classmethod
    def train(cls, data_dir: str | Path = "data") -> "Classifier":
        return cls(_train(data_dir))

    def save(self, path: str | Path) -> Path:
        return save_model(self._require(), path)

    def _require(self) -> FormFieldClassifier:
        if self.fc is None or self.fc.form_model is None:
            raise ClassifierNotInitializedError()
        return self.fc

    @property
    def has_page_model(self) -> bool:
        return self.fc is not None and self.fc.page_model is not None

    def extract_forms(self, html: str) -> list[FormResult]:
        """Classify all forms; empty list when the page has none."""
        return [_plain(r) for r in self._require().extract_forms(html)]

    def extract_forms_proba(self, html: str, threshold: float | None = None) -> list[FormResultProba]:
        """Form and field distributions; probabilities below ``threshold`` are omitted."""
        if threshold is None:
            threshold = get_settings().inference.threshold
        return [_proba(r) for r in self._require().extract_forms(html, proba=True, threshold=threshold)]

    def extract_page_type(self, html: str, url: str = "") -> PageResult:
        """Page type plus all form results.

        Raises:
            ModelNotAvailableError: If the model has no page type model.
        """
        fc = self._require()
        if fc.page_model is None:
            raise ModelNotAvailableError("page")
        page = fc.extract_page(html, url=url)
        return PageResult(type=page.result.form, forms=[_plain(r) for r in page.forms])

    def extract_page_type_proba(self, html: str, threshold: float | None = None, url: str = "") -> PageResultProba:
        fc = self._require()
        if fc.page_model is None:
            raise ModelNotAvailableError("page")
        if threshold is None:
            threshold = get_settings().inference.threshold
        page = fc.extract_page(html, proba=True, threshold=threshold, url=url)
        return PageResultProba(type=page.proba.form, forms=[_proba(r) for r in page.forms])
