"""
Multinomial logistic regression trained with L-BFGS.

Minimizes the L2-regularized multinomial cross-entropy

    L(theta) = -sum_i log softmax(theta . x_i + b)_{y_i} + (1 / C) * ||theta||^2

where theta holds one weight row plus one intercept per class, laid out
as a flat K x (D + 1) vector. The gradient is computed analytically from
softmax probabilities minus the one-hot labels.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from formsift.classifier.lbfgs import LBFGS, OptimizeResult
from formsift.utils.logging import get_logger
from formsift.vectorizer.sparse import SparseVector, stack_sparse

logger = get_logger(__name__)


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over the last axis."""
    shifted = logits - np.max(logits, axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return exp / np.sum(exp, axis=-1, keepdims=True)


def argmax_first(values: Sequence[float] | np.ndarray) -> int:
    """Index of the maximum; ties go to the lowest index."""
    return int(np.argmax(np.asarray(values)))


@dataclass
class _Design:
    """Training matrix in COO form."""

    rows: np.ndarray
    cols: np.ndarray
    vals: np.ndarray
    n_samples: int
    dim: int


def _logits(design: _Design, coef: np.ndarray, intercept: np.ndarray) -> np.ndarray:
    z = np.tile(intercept, (design.n_samples, 1))
    if design.vals.size:
        np.add.at(z, design.rows, (coef[:, design.cols] * design.vals).T)
    return z


def logreg_objective(
    design: _Design,
    labels: np.ndarray,
    params: np.ndarray,
    n_classes: int,
    c: float,
) -> tuple[float, np.ndarray]:
    """Loss and gradient of the regularized multinomial cross-entropy."""
    dim = design.dim
    weights = params.reshape(n_classes, dim + 1)
    coef = weights[:, :dim]
    intercept = weights[:, dim]

    z = _logits(design, coef, intercept)
    z_max = np.max(z, axis=1, keepdims=True)
    log_norm = z_max[:, 0] + np.log(np.sum(np.exp(z - z_max), axis=1))

    sample_idx = np.arange(design.n_samples)
    loss = float(np.sum(log_norm - z[sample_idx, labels]))
    loss += float(params @ params) / c

    delta = np.exp(z - log_norm[:, None])
    delta[sample_idx, labels] -= 1.0

    grad = np.zeros_like(weights)
    if design.vals.size:
        grad_coef_t = np.zeros((dim, n_classes))
        np.add.at(grad_coef_t, design.cols, delta[design.rows] * design.vals[:, None])
        grad[:, :dim] = grad_coef_t.T
    grad[:, dim] = np.sum(delta, axis=0)

    flat_grad = grad.ravel() + (2.0 / c) * params
    return loss, flat_grad


@dataclass
class LogRegFit:
    """Trained weights plus optimizer diagnostics."""

    coef: np.ndarray  # (n_classes, dim)
    intercept: np.ndarray  # (n_classes,)
    result: OptimizeResult


class MultinomialLogisticRegression:
    """Trainer for K-class logistic regression over sparse vectors.

    Callers must supply at least two classes; single-class inputs are
    rejected upstream.
    """

    def __init__(
        self,
        c: float = 5.0,
        max_iter: int = 100,
        history: int = 10,
        tolerance: float = 1e-5,
    ):
        if c <= 0:
            raise ValueError(f"regularization strength C must be positive, got {c}")
        self.c = c
        self.max_iter = max_iter
        self.history = history
        self.tolerance = tolerance

    def fit(self, vectors: Sequence[SparseVector], labels: Sequence[int], n_classes: int) -> LogRegFit:
        if len(vectors) != len(labels):
            raise ValueError("vectors and labels must have the same length")
        if not vectors:
            raise ValueError("cannot train on an empty matrix")

        dim = vectors[0].dim
        if any(v.dim != dim for v in vectors):
            raise ValueError("all vectors must share the same dimension")

        rows, cols, vals = stack_sparse(vectors)
        design = _Design(rows=rows, cols=cols, vals=vals, n_samples=len(vectors), dim=dim)
        y = np.asarray(labels, dtype=np.int64)
        if np.any(y < 0) or np.any(y >= n_classes):
            raise ValueError("labels must lie in [0, n_classes)")

        optimizer = LBFGS(history=self.history, max_iter=self.max_iter, tolerance=self.tolerance)
        result = optimizer.minimize(
            lambda params: logreg_objective(design, y, params, n_classes, self.c),
            np.zeros(n_classes * (dim + 1)),
        )
        logger.debug(
            "Logistic regression trained",
            samples=len(vectors),
            classes=n_classes,
            dim=dim,
            iterations=result.n_iter,
            converged=result.converged,
            loss=round(result.loss, 6),
        )

        weights = result.x.reshape(n_classes, dim + 1)
        return LogRegFit(coef=weights[:, :dim].copy(), intercept=weights[:, dim].copy(), result=result)


def predict_logits(coef: np.ndarray, intercept: np.ndarray, vector: SparseVector) -> np.ndarray:
    """Per-class scores theta_c . x + b_c for one vector."""
    indices, values = vector.indices_values()
    if indices.size == 0:
        return intercept.astype(np.float64, copy=True)
    return coef[:, indices] @ values + intercept
