"""
Pipeline-backed linear classifiers.

LinearPipelineModel owns its fitted pipelines, class list and the K x D
coefficient matrix. Subclasses only name their canonical pipeline list;
FormTypeModel and PageTypeModel differ in nothing else.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from formsift.classifier.logreg import MultinomialLogisticRegression, argmax_first, predict_logits, softmax
from formsift.classifier.pipeline import (
    FeaturePipeline,
    FittedPipeline,
    fit_pipelines,
    restore_pipelines,
    transform_pipelines,
)
from formsift.errors import ModelLoadError, TrainingDataError
from formsift.utils.config import get_settings
from formsift.utils.logging import get_logger
from formsift.vectorizer.sparse import SparseVector

logger = get_logger(__name__)


@dataclass(frozen=True)
class LinearTrainConfig:
    """Training configuration for a linear model."""

    c: float = 5.0
    max_iter: int = 100
    history: int = 10
    tolerance: float = 1e-5
    smooth_idf: bool = True

    @classmethod
    def from_settings(cls, stage: str) -> "LinearTrainConfig":
        """Build from the ``training`` settings for ``form`` or ``page``."""
        settings = get_settings()
        training = settings.training
        return cls(
            c=getattr(training, f"{stage}_c"),
            max_iter=getattr(training, f"{stage}_max_iter"),
            history=training.lbfgs_history,
            tolerance=training.tolerance,
            smooth_idf=settings.tfidf.smooth_idf,
        )


def first_seen_classes(labels: Sequence[str]) -> list[str]:
    """Distinct labels in order of first appearance."""
    return list(dict.fromkeys(labels))


class LinearPipelineModel:
    """Multinomial logistic regression over concatenated pipeline features."""

    pipelines: ClassVar[tuple[FeaturePipeline, ...]] = ()
    stage: ClassVar[str] = ""

    def __init__(
        self,
        classes: Sequence[str],
        coef: np.ndarray,
        intercept: np.ndarray,
        fitted: Sequence[FittedPipeline],
    ):
        self.classes = list(classes)
        self.coef = np.asarray(coef, dtype=np.float64)
        self.intercept = np.asarray(intercept, dtype=np.float64)
        self.fitted = list(fitted)

    @property
    def dim(self) -> int:
        return sum(fp.dim for fp in self.fitted)

    @classmethod
    def train(
        cls,
        samples: Sequence[Any],
        labels: Sequence[str],
        config: LinearTrainConfig | None = None,
    ) -> "LinearPipelineModel":
        """Fit pipelines and the classifier.

        Raises:
            TrainingDataError: If there are no samples or fewer than 2 classes.
        """
        if config is None:
            config = LinearTrainConfig.from_settings(cls.stage)
        if len(samples) != len(labels):
            raise ValueError("samples and labels must have the same length")

        classes = first_seen_classes(labels)
        if len(classes) < 2:
            raise TrainingDataError(
                f"{cls.stage} type model needs at least 2 classes",
                details={"samples": len(samples), "classes": classes},
            )

        logger.info(
            "Training linear model",
            stage=cls.stage,
            samples=len(samples),
            classes=len(classes),
        )
        fitted, matrix = fit_pipelines(cls.pipelines, samples, smooth_idf=config.smooth_idf)
        index = {label: i for i, label in enumerate(classes)}
        trainer = MultinomialLogisticRegression(
            c=config.c,
            max_iter=config.max_iter,
            history=config.history,
            tolerance=config.tolerance,
        )
        fit = trainer.fit(matrix, [index[label] for label in labels], len(classes))
        logger.info(
            "Linear model trained",
            stage=cls.stage,
            dim=matrix[0].dim,
            iterations=fit.result.n_iter,
            converged=fit.result.converged,
        )
        return cls(classes, fit.coef, fit.intercept, fitted)

    def features(self, sample: Any) -> SparseVector:
        return transform_pipelines(self.fitted, sample)

    def logits(self, sample: Any) -> np.ndarray:
        return predict_logits(self.coef, self.intercept, self.features(sample))

    def classify(self, sample: Any) -> str:
        """Best class; ties go to the first class in ``classes`` order."""
        return self.classes[argmax_first(self.logits(sample))]

    def classify_proba(self, sample: Any) -> dict[str, float]:
        """Probability per class, keyed in ``classes`` order."""
        probs = softmax(self.logits(sample))
        return {cls: float(p) for cls, p in zip(self.classes, probs, strict=True)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "classes": list(self.classes),
            "coef": self.coef.tolist(),
            "intercept": self.intercept.tolist(),
            "pipelines": [fp.to_dict() for fp in self.fitted],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LinearPipelineModel":
        """Rebuild a trained model; vectorizer state is restored, never re-fit.

        Raises:
            ModelLoadError: If fields are missing or shapes are inconsistent.
        """
        try:
            classes = list(data["classes"])
            coef = np.asarray(data["coef"], dtype=np.float64)
            intercept = np.asarray(data["intercept"], dtype=np.float64)
            pipelines = data["pipelines"]
        except (KeyError, TypeError, ValueError) as e:
            raise ModelLoadError(f"invalid {cls.stage} model: {e}") from e

        fitted = restore_pipelines(cls.pipelines, pipelines)
        dim = sum(fp.dim for fp in fitted)
        n_classes = len(classes)
        if coef.size == 0 and dim == 0:
            coef = coef.reshape(n_classes, 0)
        if coef.shape != (n_classes, dim) or intercept.shape != (n_classes,):
            raise ModelLoadError(
                f"{cls.stage} model shapes do not match",
                details={
                    "classes": n_classes,
                    "dim": dim,
                    "coef": list(coef.shape),
                    "intercept": list(intercept.shape),
                },
            )
        return cls(classes, coef, intercept, fitted)
