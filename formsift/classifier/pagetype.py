"""
Page type model.

Samples are PageContext objects; the form labels they carry come from the
form type model, so page classification runs after form classification.
"""

from formsift.classifier.linear import LinearPipelineModel
from formsift.classifier.page_features import PAGE_PIPELINES


class PageTypeModel(LinearPipelineModel):
    """Classifies a whole document into a page type."""

    pipelines = PAGE_PIPELINES
    stage = "page"
