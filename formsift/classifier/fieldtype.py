"""
Field type model: CRF tagging of the fields of one form.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from bs4 import Tag

from formsift.classifier.field_features import form_sequence
from formsift.crf.model import CRFModel, CRFTrainConfig, TrainingSequence
from formsift.htmlutil.document import get_attr, get_fields_to_annotate
from formsift.utils.config import get_settings


def crf_config_from_settings() -> CRFTrainConfig:
    settings = get_settings()
    return CRFTrainConfig(
        c2=settings.crf.c2,
        max_iter=settings.crf.max_iter,
        history=settings.training.lbfgs_history,
        tolerance=settings.training.tolerance,
    )


class FieldTypeModel:
    """Maps field names of a form to field types, given the form type."""

    def __init__(self, crf: CRFModel):
        self.crf = crf

    @classmethod
    def train(
        cls,
        sequences: Sequence[TrainingSequence],
        config: CRFTrainConfig | None = None,
    ) -> "FieldTypeModel":
        return cls(CRFModel.train(sequences, config or crf_config_from_settings()))

    def classify(self, form: Tag, form_type: str) -> dict[str, str]:
        fields = get_fields_to_annotate(form)
        labels = self.crf.predict(form_sequence(form, form_type, fields))
        return {get_attr(f, "name"): label for f, label in zip(fields, labels, strict=True)}

    def classify_proba(self, form: Tag, form_type: str) -> dict[str, dict[str, float]]:
        fields = get_fields_to_annotate(form)
        marginals = self.crf.predict_marginals(form_sequence(form, form_type, fields))
        return {get_attr(f, "name"): probs for f, probs in zip(fields, marginals, strict=True)}

    def to_dict(self) -> dict[str, Any]:
        return self.crf.to_dict()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldTypeModel":
        return cls(CRFModel.from_dict(data))
