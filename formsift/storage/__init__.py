"""
Annotation store for form and page training data.
"""

from formsift.storage.annotations import (
    AnnotationSchema,
    FormAnnotation,
    PageAnnotation,
    PageStorage,
    Storage,
    get_domain,
)

__all__ = [
    "AnnotationSchema",
    "FormAnnotation",
    "PageAnnotation",
    "PageStorage",
    "Storage",
    "get_domain",
]
