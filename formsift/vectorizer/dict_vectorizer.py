"""
Dictionary vectorizer.

Turns dict-of-attributes samples into sparse vectors. String values are
one-hot encoded as ``key=value`` columns, numeric and boolean values keep
``key`` as a single numeric column, and lists of strings produce one
``key=item`` column per item. The vocabulary is sorted by feature name so
separate fits on the same logical feature set produce identical columns.
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from formsift.vectorizer.sparse import SparseVector

SEPARATOR = "="


def _iter_features(sample: Mapping[str, Any]) -> Iterator[tuple[str, float]]:
    """Yield (feature name, value) pairs for one sample."""
    for key, value in sample.items():
        if value is None:
            continue
        if isinstance(value, bool):
            yield key, 1.0 if value else 0.0
        elif isinstance(value, int | float):
            yield key, float(value)
        elif isinstance(value, str):
            yield f"{key}{SEPARATOR}{value}", 1.0
        elif isinstance(value, Iterable):
            for item in value:
                yield f"{key}{SEPARATOR}{item}", 1.0
        else:
            raise TypeError(f"unsupported feature value for {key!r}: {type(value).__name__}")


class DictVectorizer:
    """Learns a feature-name vocabulary and vectorizes attribute dicts."""

    kind = "dict"

    def __init__(self) -> None:
        self.feature_names: list[str] = []
        self._index: dict[str, int] = {}

    def fit(self, samples: Iterable[Mapping[str, Any]]) -> "DictVectorizer":
        names: set[str] = set()
        for sample in samples:
            for name, _ in _iter_features(sample):
                names.add(name)
        self.feature_names = sorted(names)
        self._build_index()
        return self

    def transform(self, sample: Mapping[str, Any]) -> SparseVector:
        """Vectorize one sample; unseen features are dropped."""
        entries: dict[int, float] = {}
        for name, value in _iter_features(sample):
            index = self._index.get(name)
            if index is None or value == 0.0:
                continue
            entries[index] = entries.get(index, 0.0) + value
        return SparseVector(dim=len(self.feature_names), entries=entries)

    def fit_transform(self, samples: Sequence[Mapping[str, Any]]) -> list[SparseVector]:
        self.fit(samples)
        return [self.transform(sample) for sample in samples]

    def vocab_size(self) -> int:
        return len(self.feature_names)

    def _build_index(self) -> None:
        self._index = {name: i for i, name in enumerate(self.feature_names)}

    def to_dict(self) -> dict[str, Any]:
        return {"feature_names": list(self.feature_names)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DictVectorizer":
        """Rebuild from serialized state without refitting."""
        vectorizer = cls()
        vectorizer.feature_names = list(data.get("feature_names", []))
        vectorizer._build_index()
        return vectorizer
