"""
TF-IDF text vectorizer.

Supports two analyzers:
- word: lower-cased tokens of two or more word characters, stop words
  removed, then n-grams over the remaining tokens.
- char_wb: character n-grams taken inside word boundaries; each
  whitespace-separated word is padded with a space on both sides.

IDF is smoothed as ``log((1 + n) / (1 + df)) + 1`` (``log(n / df) + 1``
with smooth_idf disabled) and rows are L2-normalized. In binary mode a
token contributes a plain 1.0 with no IDF weighting and no normalization.
An empty corpus, or one whose tokens all fall under min_df, yields a
zero-dimension vectorizer whose transforms are always the zero vector.
"""

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from formsift.vectorizer.sparse import SparseVector

Analyzer = Literal["word", "char_wb"]

_TOKEN_RE = re.compile(r"(?u)\b\w\w+\b")
_WHITESPACE_RE = re.compile(r"\s\s+")


@dataclass(frozen=True)
class TfidfOptions:
    """Vectorizer configuration, fixed before fitting."""

    ngram_range: tuple[int, int] = (1, 1)
    min_df: int = 1
    binary: bool = False
    analyzer: Analyzer = "word"
    stop_words: frozenset[str] = field(default_factory=frozenset)
    smooth_idf: bool = True

    def __post_init__(self) -> None:
        low, high = self.ngram_range
        if low < 1 or high < low:
            raise ValueError(f"invalid ngram_range {self.ngram_range}")
        if self.analyzer not in ("word", "char_wb"):
            raise ValueError(f"unknown analyzer {self.analyzer!r}")


def word_ngrams(text: str, ngram_range: tuple[int, int], stop_words: Iterable[str] = ()) -> list[str]:
    """Tokenize into lower-cased words and build n-grams."""
    stop = set(stop_words)
    tokens = [t for t in _TOKEN_RE.findall(text.lower()) if t not in stop]
    low, high = ngram_range
    if low == 1 and high == 1:
        return tokens
    grams: list[str] = []
    n_tokens = len(tokens)
    for n in range(low, min(high, n_tokens) + 1):
        for i in range(n_tokens - n + 1):
            grams.append(" ".join(tokens[i : i + n]))
    return grams


def char_wb_ngrams(text: str, ngram_range: tuple[int, int]) -> list[str]:
    """Character n-grams within word boundaries, words padded with spaces."""
    text = _WHITESPACE_RE.sub(" ", text.lower())
    low, high = ngram_range
    grams: list[str] = []
    for word in text.split():
        padded = f" {word} "
        length = len(padded)
        for n in range(low, high + 1):
            offset = 0
            grams.append(padded[offset : offset + n])
            while offset + n < length:
                offset += 1
                grams.append(padded[offset : offset + n])
            if offset == 0:
                # word shorter than n: the whole padded word was emitted once
                break
    return grams


class TfidfVectorizer:
    """Learns a token vocabulary and IDF weights from a text corpus."""

    kind = "tfidf"

    def __init__(self, options: TfidfOptions | None = None) -> None:
        self.options = options or TfidfOptions()
        self.vocabulary: list[str] = []
        self.idf: list[float] = []
        self._index: dict[str, int] = {}

    def analyze(self, text: str) -> list[str]:
        """Split a document into the tokens counted by this vectorizer."""
        if not text:
            return []
        opts = self.options
        if opts.analyzer == "char_wb":
            return char_wb_ngrams(text, opts.ngram_range)
        return word_ngrams(text, opts.ngram_range, opts.stop_words)

    def fit(self, corpus: Sequence[str]) -> "TfidfVectorizer":
        doc_freq: Counter[str] = Counter()
        for text in corpus:
            doc_freq.update(set(self.analyze(text)))

        kept = sorted(token for token, df in doc_freq.items() if df >= self.options.min_df)
        n_docs = len(corpus)
        self.vocabulary = kept
        self.idf = [self._idf(n_docs, doc_freq[token]) for token in kept]
        self._build_index()
        return self

    def transform(self, text: str) -> SparseVector:
        dim = len(self.vocabulary)
        if dim == 0:
            return SparseVector.zeros(0)

        counts: Counter[int] = Counter()
        for token in self.analyze(text):
            index = self._index.get(token)
            if index is not None:
                counts[index] += 1

        if self.options.binary:
            return SparseVector(dim=dim, entries={i: 1.0 for i in counts})

        weights = {i: tf * self.idf[i] for i, tf in counts.items()}
        norm = math.sqrt(sum(w * w for w in weights.values()))
        if norm > 0:
            weights = {i: w / norm for i, w in weights.items()}
        return SparseVector(dim=dim, entries=weights)

    def fit_transform(self, corpus: Sequence[str]) -> list[SparseVector]:
        self.fit(corpus)
        return [self.transform(text) for text in corpus]

    def vocab_size(self) -> int:
        return len(self.vocabulary)

    def _idf(self, n_docs: int, df: int) -> float:
        if self.options.smooth_idf:
            return math.log((1 + n_docs) / (1 + df)) + 1.0
        return math.log(n_docs / df) + 1.0

    def _build_index(self) -> None:
        self._index = {token: i for i, token in enumerate(self.vocabulary)}

    def to_dict(self) -> dict[str, Any]:
        opts = self.options
        return {
            "ngram_range": list(opts.ngram_range),
            "min_df": opts.min_df,
            "binary": opts.binary,
            "analyzer": opts.analyzer,
            "stop_words": sorted(opts.stop_words),
            "smooth_idf": opts.smooth_idf,
            "vocabulary": list(self.vocabulary),
            "idf": list(self.idf),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TfidfVectorizer":
        """Rebuild from serialized state without refitting."""
        low, high = data.get("ngram_range", (1, 1))
        options = TfidfOptions(
            ngram_range=(int(low), int(high)),
            min_df=int(data.get("min_df", 1)),
            binary=bool(data.get("binary", False)),
            analyzer=data.get("analyzer", "word"),
            stop_words=frozenset(data.get("stop_words", ())),
            smooth_idf=bool(data.get("smooth_idf", True)),
        )
        vectorizer = cls(options)
        vectorizer.vocabulary = list(data.get("vocabulary", []))
        vectorizer.idf = [float(v) for v in data.get("idf", [])]
        if len(vectorizer.idf) != len(vectorizer.vocabulary):
            raise ValueError("idf table does not match vocabulary size")
        vectorizer._build_index()
        return vectorizer
