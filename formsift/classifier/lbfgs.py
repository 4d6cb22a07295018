"""
Limited-memory BFGS optimizer with backtracking line search.

Shared by the multinomial logistic regression trainer and the CRF
trainer. The objective is a callable returning ``(loss, gradient)`` for a
flat parameter vector; the optimizer minimizes it.
"""

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from formsift.utils.logging import get_logger

logger = get_logger(__name__)

Objective = Callable[[np.ndarray], tuple[float, np.ndarray]]


@dataclass
class OptimizeResult:
    """Outcome of an L-BFGS run."""

    x: np.ndarray
    loss: float
    n_iter: int
    converged: bool  # max |gradient| fell below tolerance


@dataclass
class _Correction:
    s: np.ndarray  # parameter difference
    y: np.ndarray  # gradient difference
    rho: float  # 1 / (y . s)


def backtracking_line_search(
    objective: Objective,
    x: np.ndarray,
    loss: float,
    grad: np.ndarray,
    direction: np.ndarray,
    initial_step: float = 1.0,
    c1: float = 1e-4,
    shrink: float = 0.5,
    max_backtracks: int = 40,
) -> tuple[float, np.ndarray, float, np.ndarray]:
    """Shrink the step until the Armijo sufficient-decrease condition holds.

    Args:
        objective: Function returning (loss, gradient).
        x: Current parameters.
        loss: Loss at x.
        grad: Gradient at x.
        direction: Descent direction.
        initial_step: First step length tried.
        c1: Sufficient-decrease constant.
        shrink: Step multiplier applied after each rejected trial.
        max_backtracks: Number of trials before giving up.

    Returns:
        Tuple of (step, new x, new loss, new gradient). ``step`` is 0.0 and
        the inputs are returned unchanged when no step satisfies the condition.
    """
    slope = float(grad @ direction)
    step = initial_step
    for _ in range(max_backtracks):
        candidate = x + step * direction
        new_loss, new_grad = objective(candidate)
        if np.isfinite(new_loss) and new_loss <= loss + c1 * step * slope:
            return step, candidate, new_loss, new_grad
        step *= shrink
    return 0.0, x, loss, grad


class LBFGS:
    """L-BFGS minimizer keeping a bounded window of correction pairs."""

    def __init__(
        self,
        history: int = 10,
        max_iter: int = 100,
        tolerance: float = 1e-5,
    ):
        if history < 1:
            raise ValueError("history must be at least 1")
        self.history = history
        self.max_iter = max_iter
        self.tolerance = tolerance

    def minimize(self, objective: Objective, x0: np.ndarray) -> OptimizeResult:
        x = np.array(x0, dtype=np.float64, copy=True)
        loss, grad = objective(x)
        corrections: deque[_Correction] = deque(maxlen=self.history)

        n_iter = 0
        converged = self._converged(grad)
        while not converged and n_iter < self.max_iter:
            n_iter += 1

            direction = self._direction(grad, corrections)
            if float(grad @ direction) >= 0:
                # not a descent direction: restart from steepest descent
                corrections.clear()
                direction = -grad

            if corrections:
                initial_step = 1.0
            else:
                initial_step = min(1.0, 1.0 / max(float(np.linalg.norm(grad)), 1e-12))

            step, new_x, new_loss, new_grad = backtracking_line_search(
                objective, x, loss, grad, direction, initial_step=initial_step
            )
            if step == 0.0:
                logger.debug("Line search failed to decrease loss", iteration=n_iter, loss=loss)
                break

            s = new_x - x
            y = new_grad - grad
            sy = float(s @ y)
            if sy > 1e-10:
                corrections.append(_Correction(s=s, y=y, rho=1.0 / sy))

            x, loss, grad = new_x, new_loss, new_grad
            converged = self._converged(grad)

            if n_iter % 10 == 0:
                logger.debug(
                    "L-BFGS iteration",
                    iteration=n_iter,
                    loss=round(loss, 6),
                    max_grad=float(np.max(np.abs(grad))) if grad.size else 0.0,
                )

        return OptimizeResult(x=x, loss=float(loss), n_iter=n_iter, converged=converged)

    def _converged(self, grad: np.ndarray) -> bool:
        if grad.size == 0:
            return True
        return float(np.max(np.abs(grad))) < self.tolerance

    @staticmethod
    def _direction(grad: np.ndarray, corrections: deque[_Correction]) -> np.ndarray:
        """Two-loop recursion: -H * grad from the stored corrections."""
        q = grad.copy()
        alphas: list[float] = []
        for c in reversed(corrections):
            alpha = c.rho * float(c.s @ q)
            q -= alpha * c.y
            alphas.append(alpha)

        if corrections:
            last = corrections[-1]
            gamma = float(last.s @ last.y) / float(last.y @ last.y)
        else:
            gamma = 1.0
        r = gamma * q

        for c, alpha in zip(corrections, reversed(alphas), strict=True):
            beta = c.rho * float(c.y @ r)
            r += c.s * (alpha - beta)
        return -r
