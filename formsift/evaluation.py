"""
Grouped k-fold cross-validation.

Examples are grouped by registered domain and every group lands in exactly
one fold, so no site contributes to both the training and the test side of
a split. Each fold trains private model instances; per-fold counts are
merged only after all folds have finished.
"""

import contextvars
from collections.abc import Callable, Hashable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

import numpy as np

from formsift.classifier.fieldtype import FieldTypeModel
from formsift.classifier.formtype import FormTypeModel
from formsift.classifier.page_features import PageContext
from formsift.classifier.pagetype import PageTypeModel
from formsift.errors import TrainingDataError
from formsift.storage.annotations import PageStorage, get_domain
from formsift.training import (
    build_crf_sequences,
    classify_forms_on_doc,
    fields_annotated,
    form_annotated,
    form_training_data,
    load_form_annotations,
    page_training_data,
)
from formsift.utils.config import get_settings
from formsift.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Folds
# =============================================================================


def group_k_fold(groups: Sequence[Hashable], n_folds: int) -> list[list[int]]:
    """Split example indices into folds keyed by group.

    Unique groups are assigned round-robin (``i % n_folds``) in first-seen
    order. The fold count is reduced to the number of distinct groups.

    Args:
        groups: Group key per example.
        n_folds: Requested number of folds (>= 1).

    Returns:
        Test indices per fold.
    """
    if n_folds < 1:
        raise ValueError(f"n_folds must be >= 1, got {n_folds}")
    unique = list(dict.fromkeys(groups))
    n_folds = min(n_folds, len(unique))
    group_to_fold = {g: i % n_folds for i, g in enumerate(unique)}

    folds: list[list[int]] = [[] for _ in range(n_folds)]
    for i, g in enumerate(groups):
        folds[group_to_fold[g]].append(i)
    return folds


def domain_groups(urls: Sequence[str]) -> list[int]:
    """Group id per URL; domains are numbered in first-seen order."""
    ids: dict[str, int] = {}
    return [ids.setdefault(get_domain(url), len(ids)) for url in urls]


def _split(n: int, test_idx: Sequence[int]) -> list[int]:
    test = set(test_idx)
    return [i for i in range(n) if i not in test]


# =============================================================================
# Metrics
# =============================================================================


@dataclass(frozen=True)
class ClassMetrics:
    precision: float
    recall: float
    f1: float
    support: int


def _ratio(num: float, den: float) -> float:
    return num / den if den else 0.0


class ConfusionMatrix:
    """True-label x predicted-label counts."""

    def __init__(self) -> None:
        self.labels: list[str] = []
        self._counts: dict[tuple[str, str], int] = {}

    def _register(self, label: str) -> None:
        if label not in self.labels:
            self.labels.append(label)

    def add(self, true: str, pred: str, count: int = 1) -> None:
        self._register(true)
        self._register(pred)
        self._counts[(true, pred)] = self._counts.get((true, pred), 0) + count

    def merge(self, other: "ConfusionMatrix") -> None:
        for (true, pred), count in other._counts.items():
            self.add(true, pred, count)

    def count(self, true: str, pred: str) -> int:
        return self._counts.get((true, pred), 0)

    def matrix(self) -> np.ndarray:
        """Dense counts; rows are true labels, columns predictions, both in ``labels`` order."""
        return np.array(
            [[self.count(t, p) for p in self.labels] for t in self.labels],
            dtype=np.int64,
        ).reshape(len(self.labels), len(self.labels))

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def support(self, label: str) -> int:
        return sum(self.count(label, p) for p in self.labels)

    def accuracy(self) -> float:
        return _ratio(sum(self.count(label, label) for label in self.labels), self.total)

    def per_class(self) -> dict[str, ClassMetrics]:
        out: dict[str, ClassMetrics] = {}
        for label in self.labels:
            tp = self.count(label, label)
            predicted = sum(self.count(t, label) for t in self.labels)
            support = self.support(label)
            precision = _ratio(tp, predicted)
            recall = _ratio(tp, support)
            out[label] = ClassMetrics(
                precision=precision,
                recall=recall,
                f1=_ratio(2 * precision * recall, precision + recall),
                support=support,
            )
        return out

    def macro_f1(self) -> float:
        metrics = self.per_class()
        return _ratio(sum(m.f1 for m in metrics.values()), len(metrics))

    def weighted_f1(self) -> float:
        metrics = self.per_class()
        return _ratio(sum(m.f1 * m.support for m in metrics.values()), self.total)


@dataclass
class EvalResult:
    """Cross-validation counts and metrics."""

    form_correct: int = 0
    form_total: int = 0
    field_correct: int = 0
    field_total: int = 0
    sequence_correct: int = 0
    sequence_total: int = 0
    page_correct: int = 0
    page_total: int = 0
    skipped_folds: int = 0
    form_confusion: ConfusionMatrix = field(default_factory=ConfusionMatrix)
    page_confusion: ConfusionMatrix = field(default_factory=ConfusionMatrix)

    @property
    def form_accuracy(self) -> float:
        return _ratio(self.form_correct, self.form_total)

    @property
    def field_accuracy(self) -> float:
        return _ratio(self.field_correct, self.field_total)

    @property
    def sequence_accuracy(self) -> float:
        return _ratio(self.sequence_correct, self.sequence_total)

    @property
    def page_accuracy(self) -> float:
        return _ratio(self.page_correct, self.page_total)

    def merge(self, other: "EvalResult") -> None:
        for name in (
            "form_correct",
            "form_total",
            "field_correct",
            "field_total",
            "sequence_correct",
            "sequence_total",
            "page_correct",
            "page_total",
            "skipped_folds",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.form_confusion.merge(other.form_confusion)
        self.page_confusion.merge(other.page_confusion)

    def format_report(self) -> str:
        lines = [
            f"Form type accuracy:  {self.form_accuracy:.2%} ({self.form_correct}/{self.form_total})",
            f"Field type accuracy: {self.field_accuracy:.2%} ({self.field_correct}/{self.field_total})",
            f"Sequence accuracy:   {self.sequence_accuracy:.2%} ({self.sequence_correct}/{self.sequence_total})",
        ]
        if self.page_total:
            cm = self.page_confusion
            lines += [
                f"Page type accuracy:  {self.page_accuracy:.2%} ({self.page_correct}/{self.page_total})",
                f"Page macro F1:       {cm.macro_f1():.4f}",
                f"Page weighted F1:    {cm.weighted_f1():.4f}",
                "",
                "Page confusion matrix (rows: true, columns: predicted):",
            ]
            width = max(len(label) for label in cm.labels)
            matrix = cm.matrix()
            for label, row in zip(cm.labels, matrix, strict=True):
                lines.append(f"  {label:<{width}}  " + " ".join(f"{n:5d}" for n in row))
            lines += ["", f"  {'class':<{width}}  precision  recall      f1  support"]
            for label, m in cm.per_class().items():
                lines.append(
                    f"  {label:<{width}}  {m.precision:9.3f}  {m.recall:6.3f}  {m.f1:6.3f}  {m.support:7d}"
                )
        if self.skipped_folds:
            lines.append(f"Skipped folds: {self.skipped_folds}")
        return "\n".join(lines)


# =============================================================================
# Fold runners
# =============================================================================


def _run_folds(
    stage: str,
    folds: list[list[int]],
    run: Callable[[list[int]], EvalResult],
    workers: int,
) -> EvalResult:
    """Run every fold and merge the results after all have finished."""

    def one(item: tuple[int, list[int]]) -> EvalResult:
        fold, test_idx = item
        with LogContext(stage=stage, fold=fold):
            logger.info("Evaluating fold", test_size=len(test_idx))
            try:
                return run(test_idx)
            except TrainingDataError as e:
                logger.warning("Fold skipped", error=e.message)
                return EvalResult(skipped_folds=1)

    if workers > 1:
        # folds inherit the caller's bound log context
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(contextvars.copy_context().run, one, item) for item in enumerate(folds)]
            partials = [f.result() for f in futures]
    else:
        partials = [one(item) for item in enumerate(folds)]

    total = EvalResult()
    for partial in partials:
        total.merge(partial)
    return total


def _evaluate_forms(annotations, n_folds: int, workers: int) -> EvalResult:
    forms, labels = form_training_data(annotations)
    folds = group_k_fold(domain_groups([a.url for a in annotations]), n_folds)

    def run(test_idx: list[int]) -> EvalResult:
        train_idx = _split(len(forms), test_idx)
        model = FormTypeModel.train([forms[i] for i in train_idx], [labels[i] for i in train_idx])
        result = EvalResult()
        for i in test_idx:
            pred = model.classify(forms[i])
            result.form_confusion.add(labels[i], pred)
            result.form_correct += pred == labels[i]
            result.form_total += 1
        return result

    return _run_folds("form", folds, run, workers)


def _evaluate_fields(annotations, n_folds: int, workers: int) -> EvalResult:
    sequences, kept = build_crf_sequences(annotations)
    if not sequences:
        return EvalResult()
    folds = group_k_fold(domain_groups([a.url for a in kept]), n_folds)

    def run(test_idx: list[int]) -> EvalResult:
        train_idx = _split(len(sequences), test_idx)
        model = FieldTypeModel.train([sequences[i] for i in train_idx])
        result = EvalResult()
        for i in test_idx:
            seq = sequences[i]
            pred = model.crf.predict(seq.features)
            correct = sum(p == gold for p, gold in zip(pred, seq.labels, strict=True))
            result.field_correct += correct
            result.field_total += len(seq.labels)
            result.sequence_correct += correct == len(seq.labels)
            result.sequence_total += 1
        return result

    return _run_folds("field", folds, run, workers)


def _evaluate_pages(page_annotations, form_annotations, n_folds: int, workers: int) -> EvalResult:
    parsed, labels, kept = page_training_data(page_annotations, form_model=None)
    docs = [c.doc for c in parsed]
    urls = [a.url for a in kept]

    groups = domain_groups(urls)
    folds = group_k_fold(groups, n_folds)
    form_domains = [get_domain(a.url) for a in form_annotations]
    forms, form_labels = form_training_data(form_annotations)

    def run(test_idx: list[int]) -> EvalResult:
        test_domains = {get_domain(urls[i]) for i in test_idx}
        keep = [i for i, d in enumerate(form_domains) if d not in test_domains]
        form_model = FormTypeModel.train([forms[i] for i in keep], [form_labels[i] for i in keep])

        def context(i: int) -> PageContext:
            return PageContext(doc=docs[i], form_labels=classify_forms_on_doc(form_model, docs[i]), url=urls[i])

        train_idx = _split(len(docs), test_idx)
        page_model = PageTypeModel.train([context(i) for i in train_idx], [labels[i] for i in train_idx])
        result = EvalResult()
        for i in test_idx:
            pred = page_model.classify(context(i))
            result.page_confusion.add(labels[i], pred)
            result.page_correct += pred == labels[i]
            result.page_total += 1
        return result

    return _run_folds("page", folds, run, workers)


def evaluate(
    data_dir: str | Path = "data",
    folds: int | None = None,
    workers: int | None = None,
) -> EvalResult:
    """Cross-validate all three stages on a data folder.

    Args:
        data_dir: Folder holding ``forms/`` and optionally ``pages/``.
        folds: Requested fold count (default from settings).
        workers: Parallel fold workers (default from settings).

    Raises:
        TrainingDataError: If the forms folder is missing or empty.
    """
    settings = get_settings()
    n_folds = folds or settings.evaluation.folds
    n_workers = workers or settings.evaluation.workers

    annotations = load_form_annotations(data_dir)
    result = EvalResult()

    annotated = form_annotated(annotations)
    if annotated:
        result.merge(_evaluate_forms(annotated, n_folds, n_workers))

    field_anns = fields_annotated(annotations)
    if field_anns:
        result.merge(_evaluate_fields(field_anns, n_folds, n_workers))

    page_store = PageStorage(Path(data_dir) / "pages")
    if page_store.exists():
        page_anns = page_store.iter_annotations()
        if page_anns:
            result.merge(_evaluate_pages(page_anns, annotated, n_folds, n_workers))

    logger.info(
        "Evaluation finished",
        folds=n_folds,
        form_accuracy=round(result.form_accuracy, 4),
        field_accuracy=round(result.field_accuracy, 4),
        page_accuracy=round(result.page_accuracy, 4),
    )
    return result
