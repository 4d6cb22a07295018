"""
Linear-chain CRF for field-type sequence tagging.
"""

from formsift.crf.model import CRFModel, CRFTrainConfig, TrainingSequence, logsumexp

__all__ = [
    "CRFModel",
    "CRFTrainConfig",
    "TrainingSequence",
    "logsumexp",
]
