"""
Feature pipelines.

A pipeline pairs an extractor with a vectorizer. The extractor is a tagged
variant: DICT extractors return an attribute dict and feed a
DictVectorizer, STRING extractors return text and feed a TfidfVectorizer.
A model's feature vector is the concatenation of its pipelines' outputs in
the order of one canonical descriptor list, shared by training, inference
and model loading.
"""

import dataclasses
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from formsift.errors import ModelLoadError
from formsift.vectorizer.dict_vectorizer import DictVectorizer
from formsift.vectorizer.sparse import SparseVector, concat_sparse
from formsift.vectorizer.tfidf import TfidfOptions, TfidfVectorizer

Vectorizer = DictVectorizer | TfidfVectorizer


class ExtractorKind(str, Enum):
    """What an extractor produces."""

    DICT = "dict"  # attribute dict -> DictVectorizer
    STRING = "string"  # text -> TfidfVectorizer


@dataclass(frozen=True)
class FeaturePipeline:
    """Descriptor of one (extractor, vectorizer) pair."""

    name: str
    kind: ExtractorKind
    extract: Callable[[Any], Any]
    tfidf: TfidfOptions | None = None

    def __post_init__(self) -> None:
        if self.kind is ExtractorKind.STRING and self.tfidf is None:
            raise ValueError(f"pipeline {self.name!r}: string extractors need tfidf options")
        if self.kind is ExtractorKind.DICT and self.tfidf is not None:
            raise ValueError(f"pipeline {self.name!r}: dict extractors take no tfidf options")

    @property
    def vectorizer_kind(self) -> str:
        return DictVectorizer.kind if self.kind is ExtractorKind.DICT else TfidfVectorizer.kind

    def new_vectorizer(self, smooth_idf: bool | None = None) -> Vectorizer:
        if self.kind is ExtractorKind.DICT:
            return DictVectorizer()
        options = self.tfidf
        if smooth_idf is not None and options.smooth_idf != smooth_idf:
            options = dataclasses.replace(options, smooth_idf=smooth_idf)
        return TfidfVectorizer(options)


def word_pipeline(
    name: str,
    extract: Callable[[Any], str],
    min_df: int = 2,
    stop_words: frozenset[str] = frozenset(),
) -> FeaturePipeline:
    """Binary word 1-2 gram TF-IDF pipeline."""
    return FeaturePipeline(
        name=name,
        kind=ExtractorKind.STRING,
        extract=extract,
        tfidf=TfidfOptions(ngram_range=(1, 2), min_df=min_df, binary=True, stop_words=stop_words),
    )


def char_pipeline(
    name: str,
    extract: Callable[[Any], str],
    ngram_range: tuple[int, int],
    min_df: int = 2,
) -> FeaturePipeline:
    """Binary char_wb n-gram TF-IDF pipeline."""
    return FeaturePipeline(
        name=name,
        kind=ExtractorKind.STRING,
        extract=extract,
        tfidf=TfidfOptions(ngram_range=ngram_range, min_df=min_df, binary=True, analyzer="char_wb"),
    )


def dict_pipeline(name: str, extract: Callable[[Any], Mapping[str, Any]]) -> FeaturePipeline:
    return FeaturePipeline(name=name, kind=ExtractorKind.DICT, extract=extract)


@dataclass
class FittedPipeline:
    """A descriptor together with its fitted vectorizer."""

    pipeline: FeaturePipeline
    vectorizer: Vectorizer

    @property
    def dim(self) -> int:
        return self.vectorizer.vocab_size()

    def transform(self, sample: Any) -> SparseVector:
        return self.vectorizer.transform(self.pipeline.extract(sample))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.pipeline.name,
            "vectorizer": self.pipeline.vectorizer_kind,
            "state": self.vectorizer.to_dict(),
        }


def fit_pipelines(
    pipelines: Sequence[FeaturePipeline],
    samples: Sequence[Any],
    smooth_idf: bool | None = None,
) -> tuple[list[FittedPipeline], list[SparseVector]]:
    """Fit every pipeline on the samples and build the concatenated matrix.

    Args:
        pipelines: Canonical ordered descriptor list.
        samples: Training samples understood by the extractors.
        smooth_idf: Override for the IDF smoothing of TF-IDF pipelines.

    Returns:
        Tuple of (fitted pipelines, one concatenated vector per sample).
    """
    fitted: list[FittedPipeline] = []
    columns: list[list[SparseVector]] = []
    for pipeline in pipelines:
        vectorizer = pipeline.new_vectorizer(smooth_idf)
        extracted = [pipeline.extract(sample) for sample in samples]
        columns.append(vectorizer.fit_transform(extracted))
        fitted.append(FittedPipeline(pipeline=pipeline, vectorizer=vectorizer))

    matrix = [concat_sparse(column[i] for column in columns) for i in range(len(samples))]
    return fitted, matrix


def transform_pipelines(fitted: Sequence[FittedPipeline], sample: Any) -> SparseVector:
    """Concatenated feature vector of one sample."""
    return concat_sparse(fp.transform(sample) for fp in fitted)


def restore_pipelines(
    pipelines: Sequence[FeaturePipeline],
    data: Any,
) -> list[FittedPipeline]:
    """Rebuild fitted pipelines from their serialized form.

    The serialized entries must match the canonical descriptors one by one
    (same count, names, order and vectorizer kind), since trained
    coefficient columns line up with that order.

    Raises:
        ModelLoadError: On any mismatch or undecodable vectorizer state.
    """
    if not isinstance(data, list):
        raise ModelLoadError("pipelines must be a list", details={"found": type(data).__name__})
    if len(data) != len(pipelines):
        raise ModelLoadError(
            "pipeline count mismatch",
            details={"expected": len(pipelines), "found": len(data)},
        )

    fitted: list[FittedPipeline] = []
    for pipeline, entry in zip(pipelines, data, strict=True):
        if not isinstance(entry, dict):
            raise ModelLoadError("pipeline entry must be an object", details={"expected": pipeline.name})
        name = entry.get("name")
        kind = entry.get("vectorizer")
        if name != pipeline.name or kind != pipeline.vectorizer_kind:
            raise ModelLoadError(
                "pipeline does not match model layout",
                details={
                    "expected": [pipeline.name, pipeline.vectorizer_kind],
                    "found": [name, kind],
                },
            )
        state = entry.get("state", {})
        if not isinstance(state, dict):
            raise ModelLoadError(f"state of pipeline {name!r} must be an object")
        try:
            if pipeline.kind is ExtractorKind.DICT:
                vectorizer: Vectorizer = DictVectorizer.from_dict(state)
            else:
                vectorizer = TfidfVectorizer.from_dict(state)
        except (AttributeError, TypeError, ValueError) as e:
            raise ModelLoadError(f"invalid state for pipeline {name!r}: {e}") from e
        fitted.append(FittedPipeline(pipeline=pipeline, vectorizer=vectorizer))
    return fitted
