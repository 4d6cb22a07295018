"""
Sparse vectorizers: dict (one-hot / numeric) and TF-IDF text.
"""

from formsift.vectorizer.dict_vectorizer import DictVectorizer
from formsift.vectorizer.sparse import SparseVector, concat_sparse, stack_sparse
from formsift.vectorizer.stop_words import ENGLISH_STOP_WORDS
from formsift.vectorizer.tfidf import TfidfOptions, TfidfVectorizer

__all__ = [
    "SparseVector",
    "concat_sparse",
    "stack_sparse",
    "DictVectorizer",
    "TfidfOptions",
    "TfidfVectorizer",
    "ENGLISH_STOP_WORDS",
]
