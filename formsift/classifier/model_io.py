"""
Model document persistence.

A trained classifier is stored as one JSON document with the keys
``form_model``, ``field_model`` and ``page_model``; the last two are null
when those models were not trained.
"""

import json
from pathlib import Path
from typing import Any

from formsift.classifier.classifier import FormFieldClassifier
from formsift.classifier.fieldtype import FieldTypeModel
from formsift.classifier.formtype import FormTypeModel
from formsift.classifier.pagetype import PageTypeModel
from formsift.errors import ModelLoadError
from formsift.utils.logging import get_logger

logger = get_logger(__name__)


def classifier_to_dict(classifier: FormFieldClassifier) -> dict[str, Any]:
    return {
        "form_model": classifier.form_model.to_dict() if classifier.form_model else None,
        "field_model": classifier.field_model.to_dict() if classifier.field_model else None,
        "page_model": classifier.page_model.to_dict() if classifier.page_model else None,
    }


def classifier_from_dict(data: Any) -> FormFieldClassifier:
    """Rebuild a classifier and its runtime state from a model document.

    Raises:
        ModelLoadError: If the document is malformed.
    """
    if not isinstance(data, dict):
        raise ModelLoadError("model document must be a JSON object")
    form_data = data.get("form_model")
    if form_data is None:
        raise ModelLoadError("model document has no form_model")

    form_model = FormTypeModel.from_dict(form_data)
    field_data = data.get("field_model")
    page_data = data.get("page_model")
    return FormFieldClassifier(
        form_model=form_model,
        field_model=FieldTypeModel.from_dict(field_data) if field_data is not None else None,
        page_model=PageTypeModel.from_dict(page_data) if page_data is not None else None,
    )


def save_model(classifier: FormFieldClassifier, path: str | Path) -> Path:
    """Write the model document, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(classifier_to_dict(classifier), f, indent=2)
    logger.info("Model saved", path=str(path))
    return path


def load_model(path: str | Path) -> FormFieldClassifier:
    """Read a model document.

    Raises:
        ModelLoadError: If the file is unreadable, not JSON, or inconsistent.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ModelLoadError(f"cannot read model: {e}", details={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise ModelLoadError(f"cannot decode model: {e}", details={"path": str(path)}) from e

    classifier = classifier_from_dict(data)
    logger.info(
        "Model loaded",
        path=str(path),
        field_model=classifier.field_model is not None,
        page_model=classifier.page_model is not None,
    )
    return classifier
