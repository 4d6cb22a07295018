"""
Form, field and page classification pipeline.

FormFieldClassifier chains the three models: the form type model labels
each <form>, the field type model tags the form's fields given that label,
and the page type model labels the whole document using the form labels as
one of its feature pipelines.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup, Tag

from formsift.classifier.fieldtype import FieldTypeModel
from formsift.classifier.formtype import FormTypeModel
from formsift.classifier.page_features import PageContext
from formsift.classifier.pagetype import PageTypeModel
from formsift.errors import ClassifierNotInitializedError, ModelNotAvailableError
from formsift.htmlutil.document import get_forms, load_html


def threshold_map(dist: Mapping[str, float], threshold: float) -> dict[str, float]:
    """Drop entries below ``threshold``; ``threshold <= 0`` keeps everything."""
    if threshold <= 0:
        return dict(dist)
    return {label: p for label, p in dist.items() if p >= threshold}


def best_class(dist: Mapping[str, float]) -> str:
    """Label with the highest probability; ties go to the first label."""
    best, best_p = "", -1.0
    for label, p in dist.items():
        if p > best_p:
            best, best_p = label, p
    return best


@dataclass
class ClassifyResult:
    form: str
    fields: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"form": self.form}
        if self.fields:
            out["fields"] = self.fields
        return out


@dataclass
class ClassifyProbaResult:
    form: dict[str, float]
    fields: dict[str, dict[str, float]] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"form": self.form}
        if self.fields:
            out["fields"] = self.fields
        return out


@dataclass
class FormResult:
    """Result for one form; exactly one of ``result`` / ``proba`` is set."""

    form_html: str
    result: ClassifyResult | None = None
    proba: ClassifyProbaResult | None = None


@dataclass
class PageResult:
    """Page-level result together with the per-form results."""

    forms: list[FormResult] = field(default_factory=list)
    result: ClassifyResult | None = None
    proba: ClassifyProbaResult | None = None


class FormFieldClassifier:
    """Detects form, field and page types."""

    def __init__(
        self,
        form_model: FormTypeModel | None,
        field_model: FieldTypeModel | None = None,
        page_model: PageTypeModel | None = None,
    ):
        self.form_model = form_model
        self.field_model = field_model
        self.page_model = page_model

    def _require_form_model(self) -> FormTypeModel:
        if self.form_model is None:
            raise ClassifierNotInitializedError()
        return self.form_model

    def _require_page_model(self) -> PageTypeModel:
        if self.page_model is None:
            raise ModelNotAvailableError("page")
        return self.page_model

    # =========================================================================
    # Forms and fields
    # =========================================================================

    def classify(self, form: Tag, fields: bool = True) -> ClassifyResult:
        """Form type, plus field types when asked and a field model exists."""
        form_type = self._require_form_model().classify(form)
        result = ClassifyResult(form=form_type)
        if fields and self.field_model is not None:
            result.fields = self.field_model.classify(form, form_type)
        return result

    def classify_fields(self, form: Tag, form_type: str) -> dict[str, str]:
        """Field types conditioned on ``form_type``.

        Raises:
            ModelNotAvailableError: If no field model was trained.
        """
        if self.field_model is None:
            raise ModelNotAvailableError("field")
        return self.field_model.classify(form, form_type)

    def classify_proba(self, form: Tag, threshold: float = 0.0, fields: bool = True) -> ClassifyProbaResult:
        """Form and field distributions filtered by ``threshold``.

        Fields are tagged under the most likely form type.
        """
        form_proba = self._require_form_model().classify_proba(form)
        result = ClassifyProbaResult(form=threshold_map(form_proba, threshold))
        if fields and self.field_model is not None:
            field_proba = self.field_model.classify_proba(form, best_class(form_proba))
            result.fields = {
                name: threshold_map(probs, threshold) for name, probs in field_proba.items()
            }
        return result

    # =========================================================================
    # Pages
    # =========================================================================

    def page_context(self, doc: BeautifulSoup, url: str = "") -> PageContext:
        """Page sample with form labels predicted by the form model."""
        form_model = self._require_form_model()
        labels = tuple(form_model.classify(form) for form in get_forms(doc))
        return PageContext(doc=doc, form_labels=labels, url=url)

    def classify_page(self, doc: BeautifulSoup, url: str = "") -> str:
        page_model = self._require_page_model()
        return page_model.classify(self.page_context(doc, url))

    def classify_page_proba(self, doc: BeautifulSoup, threshold: float = 0.0, url: str = "") -> dict[str, float]:
        page_model = self._require_page_model()
        return threshold_map(page_model.classify_proba(self.page_context(doc, url)), threshold)

    # =========================================================================
    # Whole documents
    # =========================================================================

    def _form_results(
        self,
        forms: list[Tag],
        proba: bool,
        threshold: float,
        classify_fields: bool,
    ) -> list[FormResult]:
        results = []
        for form in forms:
            item = FormResult(form_html=form.decode_contents())
            if proba:
                item.proba = self.classify_proba(form, threshold, classify_fields)
            else:
                item.result = self.classify(form, classify_fields)
            results.append(item)
        return results

    def extract_forms(
        self,
        html: str,
        proba: bool = False,
        threshold: float = 0.0,
        classify_fields: bool = True,
    ) -> list[FormResult]:
        """Classify every form in ``html``; no forms gives an empty list."""
        self._require_form_model()
        doc = load_html(html)
        return self._form_results(get_forms(doc), proba, threshold, classify_fields)

    def extract_page(
        self,
        html: str,
        proba: bool = False,
        threshold: float = 0.0,
        classify_fields: bool = True,
        url: str = "",
    ) -> PageResult:
        """Classify the forms of ``html`` and then the page itself.

        Raises:
            ModelNotAvailableError: If no page model was trained.
        """
        form_model = self._require_form_model()
        page_model = self._require_page_model()
        doc = load_html(html)
        forms = get_forms(doc)
        form_results = self._form_results(forms, proba, threshold, classify_fields)

        if proba:
            labels = tuple(form_model.classify(form) for form in forms)
        else:
            labels = tuple(r.result.form for r in form_results)
        context = PageContext(doc=doc, form_labels=labels, url=url)

        page = PageResult(forms=form_results)
        if proba:
            page.proba = ClassifyProbaResult(
                form=threshold_map(page_model.classify_proba(context), threshold)
            )
        else:
            page.result = ClassifyResult(form=page_model.classify(context))
        return page
