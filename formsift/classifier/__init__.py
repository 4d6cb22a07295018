"""
Classification engine: feature pipelines, linear models, field tagging and
the form/field/page orchestrator.
"""

from formsift.classifier.classifier import (
    ClassifyProbaResult,
    ClassifyResult,
    FormFieldClassifier,
    FormResult,
    PageResult,
    best_class,
    threshold_map,
)
from formsift.classifier.fieldtype import FieldTypeModel
from formsift.classifier.formtype import FormTypeModel
from formsift.classifier.linear import LinearTrainConfig
from formsift.classifier.model_io import load_model, save_model
from formsift.classifier.page_features import PageContext
from formsift.classifier.pagetype import PageTypeModel

__all__ = [
    "FormFieldClassifier",
    "ClassifyResult",
    "ClassifyProbaResult",
    "FormResult",
    "PageResult",
    "best_class",
    "threshold_map",
    "FormTypeModel",
    "FieldTypeModel",
    "PageTypeModel",
    "PageContext",
    "LinearTrainConfig",
    "load_model",
    "save_model",
]
