"""
Linear-chain conditional random field.

Scores a label sequence y for tokens x_1..x_n as

    score(x, y) = sum_t sum_a x_t[a] * W[a, y_t] + sum_{t>0} T[y_{t-1}, y_t]

with state weights W (attributes x labels) and transition weights T
(labels x labels). Training minimizes the L2-regularized negative
conditional log-likelihood with L-BFGS; the log-partition function and the
expected feature counts come from log-space forward-backward. Decoding uses
Viterbi.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from formsift.classifier.lbfgs import LBFGS
from formsift.errors import ModelLoadError, TrainingDataError
from formsift.utils.logging import get_logger

logger = get_logger(__name__)

AttributeMap = Mapping[str, float]


def logsumexp(values: np.ndarray, axis: int | None = None) -> np.ndarray | float:
    """Stable log(sum(exp(values))) along an axis."""
    peak = np.max(values, axis=axis, keepdims=True)
    out = np.log(np.sum(np.exp(values - peak), axis=axis, keepdims=True)) + peak
    if axis is None:
        return float(out.reshape(()))
    return np.squeeze(out, axis=axis)


@dataclass
class TrainingSequence:
    """One training sequence: per-token attribute maps and gold labels."""

    features: list[dict[str, float]]
    labels: list[str]

    def __post_init__(self) -> None:
        if len(self.features) != len(self.labels):
            raise ValueError(
                f"sequence has {len(self.features)} tokens but {len(self.labels)} labels"
            )


@dataclass(frozen=True)
class CRFTrainConfig:
    c2: float = 0.1
    max_iter: int = 100
    history: int = 10
    tolerance: float = 1e-5


@dataclass
class _Encoded:
    """A sequence in COO form over the attribute vocabulary."""

    n_tokens: int
    rows: np.ndarray
    cols: np.ndarray
    vals: np.ndarray
    labels: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))


class CRFModel:
    """Linear-chain CRF over sparse per-token attributes."""

    def __init__(
        self,
        labels: Sequence[str],
        attributes: Sequence[str],
        state_weights: np.ndarray,
        transitions: np.ndarray,
    ):
        self.labels = list(labels)
        self.attributes = list(attributes)
        self._attr_index = {a: i for i, a in enumerate(self.attributes)}
        self.state_weights = np.asarray(state_weights, dtype=np.float64).reshape(
            len(self.attributes), len(self.labels)
        )
        self.transitions = np.asarray(transitions, dtype=np.float64).reshape(
            len(self.labels), len(self.labels)
        )

    # =========================================================================
    # Encoding and scoring
    # =========================================================================

    def _encode(self, features: Sequence[AttributeMap]) -> _Encoded:
        rows: list[int] = []
        cols: list[int] = []
        vals: list[float] = []
        for t, attrs in enumerate(features):
            for name, value in attrs.items():
                index = self._attr_index.get(name)
                if index is None or value == 0.0:
                    continue
                rows.append(t)
                cols.append(index)
                vals.append(float(value))
        return _Encoded(
            n_tokens=len(features),
            rows=np.asarray(rows, dtype=np.int64),
            cols=np.asarray(cols, dtype=np.int64),
            vals=np.asarray(vals, dtype=np.float64),
        )

    @staticmethod
    def _emissions(seq: _Encoded, state_weights: np.ndarray) -> np.ndarray:
        emissions = np.zeros((seq.n_tokens, state_weights.shape[1]))
        if seq.rows.size:
            np.add.at(emissions, seq.rows, seq.vals[:, None] * state_weights[seq.cols])
        return emissions

    @staticmethod
    def _forward_backward(
        emissions: np.ndarray, transitions: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, float]:
        """Log-space forward and backward tables and log Z."""
        n, n_labels = emissions.shape
        alpha = np.zeros((n, n_labels))
        beta = np.zeros((n, n_labels))
        alpha[0] = emissions[0]
        for t in range(1, n):
            alpha[t] = logsumexp(alpha[t - 1][:, None] + transitions, axis=0) + emissions[t]
        for t in range(n - 2, -1, -1):
            beta[t] = logsumexp(transitions + (emissions[t + 1] + beta[t + 1])[None, :], axis=1)
        return alpha, beta, logsumexp(alpha[-1])

    # =========================================================================
    # Inference
    # =========================================================================

    def predict(self, features: Sequence[AttributeMap]) -> list[str]:
        """Viterbi decoding; the result has one label per input token."""
        if not features:
            return []
        emissions = self._emissions(self._encode(features), self.state_weights)
        n = emissions.shape[0]

        delta = emissions[0].copy()
        backpointers = np.zeros((n, len(self.labels)), dtype=np.int64)
        for t in range(1, n):
            candidates = delta[:, None] + self.transitions
            backpointers[t] = np.argmax(candidates, axis=0)
            delta = candidates[backpointers[t], np.arange(len(self.labels))] + emissions[t]

        path = [int(np.argmax(delta))]
        for t in range(n - 1, 0, -1):
            path.append(int(backpointers[t][path[-1]]))
        path.reverse()
        return [self.labels[i] for i in path]

    def predict_marginals(self, features: Sequence[AttributeMap]) -> list[dict[str, float]]:
        """Per-token marginal probability of every label."""
        if not features:
            return []
        emissions = self._emissions(self._encode(features), self.state_weights)
        alpha, beta, log_z = self._forward_backward(emissions, self.transitions)
        marginals = np.exp(alpha + beta - log_z)
        return [
            {label: float(p) for label, p in zip(self.labels, row, strict=True)}
            for row in marginals
        ]

    # =========================================================================
    # Training
    # =========================================================================

    @classmethod
    def train(
        cls,
        sequences: Sequence[TrainingSequence],
        config: CRFTrainConfig | None = None,
    ) -> "CRFModel":
        """Train on labeled sequences; empty sequences are skipped.

        Raises:
            TrainingDataError: If no non-empty sequence remains.
        """
        config = config or CRFTrainConfig()
        usable = [s for s in sequences if s.features]
        if not usable:
            raise TrainingDataError("no non-empty sequences to train the CRF on")

        labels = list(dict.fromkeys(label for s in usable for label in s.labels))
        attributes = sorted({name for s in usable for attrs in s.features for name in attrs})
        n_attrs, n_labels = len(attributes), len(labels)

        model = cls(labels, attributes, np.zeros((n_attrs, n_labels)), np.zeros((n_labels, n_labels)))
        label_index = {label: i for i, label in enumerate(labels)}
        encoded = []
        for s in usable:
            enc = model._encode(s.features)
            enc.labels = np.asarray([label_index[label] for label in s.labels], dtype=np.int64)
            encoded.append(enc)

        logger.info(
            "Training CRF",
            sequences=len(encoded),
            tokens=sum(e.n_tokens for e in encoded),
            labels=n_labels,
            attributes=n_attrs,
        )

        n_state = n_attrs * n_labels

        def objective(params: np.ndarray) -> tuple[float, np.ndarray]:
            state = params[:n_state].reshape(n_attrs, n_labels)
            trans = params[n_state:].reshape(n_labels, n_labels)
            return _nll(encoded, state, trans, config.c2, params)

        optimizer = LBFGS(history=config.history, max_iter=config.max_iter, tolerance=config.tolerance)
        result = optimizer.minimize(objective, np.zeros(n_state + n_labels * n_labels))
        logger.info(
            "CRF trained",
            iterations=result.n_iter,
            converged=result.converged,
            loss=round(result.loss, 6),
        )

        model.state_weights = result.x[:n_state].reshape(n_attrs, n_labels).copy()
        model.transitions = result.x[n_state:].reshape(n_labels, n_labels).copy()
        return model

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        state_features: dict[str, dict[str, float]] = {}
        for a, attr in enumerate(self.attributes):
            weights = {
                label: float(w)
                for label, w in zip(self.labels, self.state_weights[a], strict=True)
                if w != 0.0
            }
            if weights:
                state_features[attr] = weights
        transitions = {
            prev: {label: float(w) for label, w in zip(self.labels, row, strict=True)}
            for prev, row in zip(self.labels, self.transitions, strict=True)
        }
        return {
            "labels": list(self.labels),
            "state_features": state_features,
            "transitions": transitions,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CRFModel":
        """Rebuild dense weight matrices from the keyed representation.

        Raises:
            ModelLoadError: On missing fields or unknown labels.
        """
        try:
            labels = list(data["labels"])
            state_features = data.get("state_features") or {}
            transition_map = data.get("transitions") or {}
            label_index = {label: i for i, label in enumerate(labels)}
            attributes = sorted(state_features)

            state = np.zeros((len(attributes), len(labels)))
            for a, attr in enumerate(attributes):
                for label, w in state_features[attr].items():
                    state[a, label_index[label]] = float(w)
            trans = np.zeros((len(labels), len(labels)))
            for prev, row in transition_map.items():
                for label, w in row.items():
                    trans[label_index[prev], label_index[label]] = float(w)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ModelLoadError(f"invalid CRF model: {e}") from e
        return cls(labels, attributes, state, trans)


def _nll(
    encoded: Sequence[_Encoded],
    state: np.ndarray,
    trans: np.ndarray,
    c2: float,
    params: np.ndarray,
) -> tuple[float, np.ndarray]:
    """Regularized negative log-likelihood and its gradient."""
    loss = 0.0
    grad_state = np.zeros_like(state)
    grad_trans = np.zeros_like(trans)

    for seq in encoded:
        emissions = CRFModel._emissions(seq, state)
        alpha, beta, log_z = CRFModel._forward_backward(emissions, trans)
        y = seq.labels
        gold = emissions[np.arange(seq.n_tokens), y].sum() + trans[y[:-1], y[1:]].sum()
        loss += log_z - gold

        # expected minus observed emission counts
        node = np.exp(alpha + beta - log_z)
        node[np.arange(seq.n_tokens), y] -= 1.0
        if seq.rows.size:
            np.add.at(grad_state, seq.cols, seq.vals[:, None] * node[seq.rows])

        if seq.n_tokens > 1:
            edge = (
                alpha[:-1, :, None]
                + trans[None, :, :]
                + (emissions[1:] + beta[1:])[:, None, :]
                - log_z
            )
            grad_trans += np.exp(edge).sum(axis=0)
            np.add.at(grad_trans, (y[:-1], y[1:]), -1.0)

    loss += c2 * float(params @ params)
    grad = np.concatenate([grad_state.ravel(), grad_trans.ravel()]) + 2.0 * c2 * params
    return float(loss), grad
