"""
Error definitions for formsift.

Error codes follow the pattern:
- INVALID_*: Input errors (malformed HTML)
- NO_*: Missing training data
- MODEL_*: Model file and sub-model availability errors
- NOT_INITIALIZED: Facade used without a loaded classifier
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes raised by the classification core."""

    INVALID_HTML = "INVALID_HTML"
    """Input could not be parsed as HTML."""

    NO_TRAINING_DATA = "NO_TRAINING_DATA"
    """Data directory missing, empty, or not usable for training.
    Fatal for train and evaluate."""

    MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
    """Model document unreadable, undecodable or inconsistent. Fatal."""

    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    """Field or page classification requested but that sub-model was never trained.
    Recoverable: callers fall back to form-only classification."""

    NOT_INITIALIZED = "NOT_INITIALIZED"
    """Classifier has no form type model."""


class FormsiftError(Exception):
    """Base exception for formsift errors."""

    code: ErrorCode = ErrorCode.NOT_INITIALIZED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable error payload."""
        result: dict[str, Any] = {
            "error_code": self.code.value,
            "error": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            result["details"] = self.details
        return result


class HTMLParseError(FormsiftError):
    """Raised when the HTML document service cannot parse its input."""

    code = ErrorCode.INVALID_HTML


class TrainingDataError(FormsiftError):
    """Raised when training data is missing or degenerate."""

    code = ErrorCode.NO_TRAINING_DATA


class ModelLoadError(FormsiftError):
    """Raised when a model document cannot be read or reconstructed."""

    code = ErrorCode.MODEL_LOAD_FAILED


class ModelNotAvailableError(FormsiftError):
    """Raised when an optional sub-model (field or page) is missing."""

    code = ErrorCode.MODEL_NOT_AVAILABLE
    recoverable = True

    def __init__(self, model: str):
        super().__init__(f"{model} model not available", details={"model": model})
        self.model = model


class ClassifierNotInitializedError(FormsiftError):
    """Raised when the facade is used without a form type model."""

    code = ErrorCode.NOT_INITIALIZED

    def __init__(self, message: str = "classifier not initialized"):
        super().__init__(message)
