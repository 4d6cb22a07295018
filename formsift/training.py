"""
Training driver.

Trains the form type model on form-annotated forms, the field type CRF on
field-annotated forms (when there are any) and the page type model when a
pages folder exists. The page model's form-summary features come from the
freshly trained form model.
"""

from collections.abc import Sequence
from pathlib import Path

from bs4 import Tag

from formsift.classifier.classifier import FormFieldClassifier
from formsift.classifier.field_features import form_sequence
from formsift.classifier.fieldtype import FieldTypeModel
from formsift.classifier.formtype import FormTypeModel
from formsift.classifier.linear import LinearTrainConfig
from formsift.classifier.page_features import PageContext
from formsift.classifier.pagetype import PageTypeModel
from formsift.crf.model import CRFTrainConfig, TrainingSequence
from formsift.errors import FormsiftError, TrainingDataError
from formsift.htmlutil.document import get_attr, get_fields_to_annotate, get_forms, load_form, load_html
from formsift.storage.annotations import FormAnnotation, PageAnnotation, PageStorage, Storage
from formsift.utils.logging import get_logger

logger = get_logger(__name__)


def form_annotated(annotations: Sequence[FormAnnotation]) -> list[FormAnnotation]:
    return [a for a in annotations if a.form_annotated]


def fields_annotated(annotations: Sequence[FormAnnotation]) -> list[FormAnnotation]:
    return [a for a in annotations if a.fields_annotated]


def form_training_data(annotations: Sequence[FormAnnotation]) -> tuple[list[Tag], list[str]]:
    """Parsed forms and their full type names."""
    forms = [load_form(a.form_html) for a in annotations]
    return forms, [a.type_full for a in annotations]


def field_label(annotation: FormAnnotation, name: str) -> str:
    """Gold field label: full name, then short code, else ``other``."""
    if name in annotation.field_types_full:
        return annotation.field_types_full[name]
    return annotation.field_types.get(name, "other")


def build_crf_sequences(
    annotations: Sequence[FormAnnotation],
) -> tuple[list[TrainingSequence], list[FormAnnotation]]:
    """CRF sequences for field-annotated forms; forms without fields are skipped.

    Returns:
        Tuple of (sequences, the annotations each sequence came from).
    """
    sequences: list[TrainingSequence] = []
    kept: list[FormAnnotation] = []
    for ann in annotations:
        form = load_form(ann.form_html)
        fields = get_fields_to_annotate(form)
        if not fields:
            continue
        sequences.append(
            TrainingSequence(
                features=form_sequence(form, ann.type_full, fields),
                labels=[field_label(ann, get_attr(f, "name")) for f in fields],
            )
        )
        kept.append(ann)
    return sequences, kept


def classify_forms_on_doc(form_model: FormTypeModel | None, doc) -> tuple[str, ...]:
    if form_model is None:
        return ()
    return tuple(form_model.classify(form) for form in get_forms(doc))


def page_training_data(
    annotations: Sequence[PageAnnotation],
    form_model: FormTypeModel | None,
) -> tuple[list[PageContext], list[str], list[PageAnnotation]]:
    """Page samples, labels, and the annotations that parsed."""
    contexts: list[PageContext] = []
    labels: list[str] = []
    kept: list[PageAnnotation] = []
    for ann in annotations:
        try:
            doc = load_html(ann.html)
        except FormsiftError as e:
            logger.warning("Skipping unparsable page", path=ann.path, error=str(e))
            continue
        contexts.append(PageContext(doc=doc, form_labels=classify_forms_on_doc(form_model, doc), url=ann.url))
        labels.append(ann.type_full)
        kept.append(ann)
    return contexts, labels, kept


def load_form_annotations(data_dir: str | Path) -> list[FormAnnotation]:
    """Form annotations of ``data_dir/forms``.

    Raises:
        TrainingDataError: If there are none.
    """
    annotations = Storage(Path(data_dir) / "forms").iter_annotations()
    if not annotations:
        raise TrainingDataError(f"no annotations found in {data_dir}", details={"data_dir": str(data_dir)})
    return annotations


def train(
    data_dir: str | Path = "data",
    form_config: LinearTrainConfig | None = None,
    crf_config: CRFTrainConfig | None = None,
    page_config: LinearTrainConfig | None = None,
) -> FormFieldClassifier:
    """Train all available models from a data folder.

    Args:
        data_dir: Folder holding ``forms/`` and optionally ``pages/``.
        form_config: Form model settings (defaults from settings).
        crf_config: CRF settings (defaults from settings).
        page_config: Page model settings (defaults from settings).

    Returns:
        Trained classifier; field and page models may be None.

    Raises:
        TrainingDataError: If the forms folder is missing or unusable.
    """
    annotations = load_form_annotations(data_dir)

    forms, labels = form_training_data(form_annotated(annotations))
    form_model = FormTypeModel.train(forms, labels, form_config)

    field_model = None
    field_anns = fields_annotated(annotations)
    if field_anns:
        sequences, _ = build_crf_sequences(field_anns)
        if sequences:
            field_model = FieldTypeModel.train(sequences, crf_config)
    else:
        logger.info("No field annotations, skipping field type model")

    page_model = None
    page_store = PageStorage(Path(data_dir) / "pages")
    if page_store.exists():
        page_anns = page_store.iter_annotations()
        if page_anns:
            contexts, page_labels, _ = page_training_data(page_anns, form_model)
            page_model = PageTypeModel.train(contexts, page_labels, page_config)

    return FormFieldClassifier(form_model=form_model, field_model=field_model, page_model=page_model)
