"""
formsift: classify HTML forms, their fields and whole pages.
"""

from formsift.api import Classifier, FormResult, FormResultProba, PageResult, PageResultProba
from formsift.evaluation import EvalResult, evaluate
from formsift.training import train

__version__ = "0.1.0"

__all__ = [
    "Classifier",
    "FormResult",
    "FormResultProba",
    "PageResult",
    "PageResultProba",
    "EvalResult",
    "evaluate",
    "train",
]
