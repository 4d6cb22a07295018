"""
Form type model.
"""

from formsift.classifier.form_features import FORM_PIPELINES
from formsift.classifier.linear import LinearPipelineModel


class FormTypeModel(LinearPipelineModel):
    """Classifies a <form> element into a form type."""

    pipelines = FORM_PIPELINES
    stage = "form"
