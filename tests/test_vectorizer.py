"""
Tests for sparse vectors, the dict vectorizer and the TF-IDF vectorizer.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-SV-N-01 | concat of 3 vectors | Equivalence – normal | dim is sum, indices offset | - |
| TC-SV-N-02 | dot vs per-pipeline dots | Equivalence – normal | Sum of parts | - |
| TC-SV-B-01 | index >= dim | Boundary – invalid | ValueError | - |
| TC-SV-B-02 | stack of no vectors | Boundary – empty | Empty COO arrays | - |
| TC-DV-N-01 | str/num/bool/list values | Equivalence – normal | one-hot + numeric columns | - |
| TC-DV-N-02 | fit twice | Equivalence – normal | Identical columns | reproducible |
| TC-DV-N-03 | unseen key | Equivalence – normal | Dropped | - |
| TC-DV-N-04 | to_dict/from_dict | Equivalence – normal | Same transform | - |
| TC-DV-A-01 | unsupported value | Abnormal – type | TypeError | - |
| TC-TF-N-01 | word 1-2 grams | Equivalence – normal | Unigrams + bigrams | - |
| TC-TF-N-02 | char_wb grams | Equivalence – normal | Padded n-grams | - |
| TC-TF-N-03 | min_df=2 | Equivalence – normal | Rare tokens dropped | - |
| TC-TF-N-04 | non-binary transform | Equivalence – normal | L2 norm 1 | - |
| TC-TF-N-05 | smoothed idf | Equivalence – normal | log((1+N)/(1+df))+1 | - |
| TC-TF-N-06 | binary transform | Equivalence – normal | 1.0 per present token | - |
| TC-TF-B-01 | empty corpus | Boundary – empty | dim 0, zero vectors | - |
| TC-TF-B-02 | all-stopword corpus | Boundary – empty | dim 0 | - |
| TC-TF-A-01 | idf length mismatch | Abnormal – state | ValueError | - |
"""

import math

import numpy as np
import pytest

from formsift.vectorizer import (
    DictVectorizer,
    SparseVector,
    TfidfOptions,
    TfidfVectorizer,
    concat_sparse,
    stack_sparse,
)
from formsift.vectorizer.tfidf import char_wb_ngrams, word_ngrams

pytestmark = pytest.mark.unit


# =============================================================================
# SparseVector
# =============================================================================


class TestSparseVector:
    """Tests for SparseVector and concatenation."""

    def test_concat_offsets_indices(self) -> None:
        """Concatenation sums dimensions and offsets indices."""
        a = SparseVector(dim=2, entries={1: 1.0})
        b = SparseVector(dim=3, entries={0: 2.0, 2: 3.0})
        c = SparseVector(dim=1, entries={0: 4.0})

        joined = concat_sparse([a, b, c])

        assert joined.dim == 6
        assert dict(joined.entries) == {1: 1.0, 2: 2.0, 4: 3.0, 5: 4.0}

    def test_concat_dot_equals_sum_of_parts(self) -> None:
        """Dot product of the concatenation equals the sum of per-part dots."""
        parts = [
            SparseVector(dim=3, entries={0: 1.0, 2: -2.0}),
            SparseVector(dim=0),
            SparseVector(dim=2, entries={1: 0.5}),
        ]
        coef = [np.array([0.3, 1.0, 2.0]), np.zeros(0), np.array([4.0, -1.0])]

        joined = concat_sparse(parts)
        total = sum(p.dot(w) for p, w in zip(parts, coef, strict=True))

        assert joined.dot(np.concatenate(coef)) == pytest.approx(total)

    def test_index_out_of_range_rejected(self) -> None:
        """Entries must lie below the declared dimension."""
        with pytest.raises(ValueError):
            SparseVector(dim=2, entries={2: 1.0})

    def test_entries_are_immutable(self) -> None:
        """Entries cannot be mutated after construction."""
        vec = SparseVector(dim=2, entries={0: 1.0})
        with pytest.raises(TypeError):
            vec.entries[1] = 2.0  # type: ignore[index]

    def test_stack_empty(self) -> None:
        """Stacking no vectors gives empty COO arrays."""
        rows, cols, vals = stack_sparse([])
        assert rows.size == cols.size == vals.size == 0

    def test_to_dense(self) -> None:
        vec = SparseVector(dim=3, entries={2: 5.0})
        assert vec.to_dense().tolist() == [0.0, 0.0, 5.0]


# =============================================================================
# DictVectorizer
# =============================================================================


class TestDictVectorizer:
    """Tests for DictVectorizer."""

    def test_value_encoding(self) -> None:
        """Strings are one-hot, numbers keep their key, lists expand per item."""
        vec = DictVectorizer()
        vec.fit([{"tag": "input", "count": 2, "flag": True, "tokens": ["a", "b"]}])

        assert vec.feature_names == ["count", "flag", "tag=input", "tokens=a", "tokens=b"]
        out = vec.transform({"tag": "input", "count": 3, "tokens": ["b"]})
        assert dict(out.entries) == {0: 3.0, 2: 1.0, 4: 1.0}

    def test_fit_is_reproducible(self) -> None:
        """Two fits on the same corpus produce identical vectors."""
        corpus = [{"b": "x", "a": 1.0}, {"c": "y"}]
        first = DictVectorizer().fit_transform(corpus)
        second = DictVectorizer().fit_transform(list(reversed(corpus)))[::-1]
        assert first == second

    def test_unseen_features_dropped(self) -> None:
        vec = DictVectorizer().fit([{"a": "x"}])
        out = vec.transform({"a": "y", "b": 1.0})
        assert out.dim == 1
        assert out.nnz == 0

    def test_round_trip_state(self) -> None:
        """Restored vectorizer transforms identically."""
        vec = DictVectorizer().fit([{"a": "x", "n": 1}, {"a": "z"}])
        restored = DictVectorizer.from_dict(vec.to_dict())
        sample = {"a": "z", "n": 4}
        assert restored.transform(sample) == vec.transform(sample)

    def test_unsupported_value(self) -> None:
        with pytest.raises(TypeError):
            DictVectorizer().fit([{"a": object()}])


# =============================================================================
# TfidfVectorizer
# =============================================================================


class TestAnalyzers:
    """Tests for word and char_wb tokenization."""

    def test_word_ngrams(self) -> None:
        grams = word_ngrams("Log in now", (1, 2), stop_words={"now"})
        assert grams == ["log", "in", "log in"]

    def test_word_tokens_need_two_chars(self) -> None:
        assert word_ngrams("a bc d", (1, 1)) == ["bc"]

    def test_char_wb_ngrams(self) -> None:
        grams = char_wb_ngrams("ab", (2, 3))
        assert grams == [" a", "ab", "b ", " ab", "ab "]

    def test_char_wb_short_word(self) -> None:
        """A word shorter than n yields the whole padded word once."""
        assert char_wb_ngrams("a", (5, 6)) == [" a "]


class TestTfidfVectorizer:
    """Tests for TfidfVectorizer."""

    def test_min_df_filters_rare_tokens(self) -> None:
        vec = TfidfVectorizer(TfidfOptions(min_df=2))
        vec.fit(["login form", "login page", "search"])
        assert vec.vocabulary == ["login"]

    def test_l2_normalized(self) -> None:
        vec = TfidfVectorizer(TfidfOptions())
        vec.fit(["login form", "login page", "search page"])
        values = list(vec.transform("login form page").entries.values())
        assert math.sqrt(sum(v * v for v in values)) == pytest.approx(1.0)

    def test_smoothed_idf(self) -> None:
        vec = TfidfVectorizer(TfidfOptions())
        vec.fit(["aa bb", "aa", "cc"])
        idf = dict(zip(vec.vocabulary, vec.idf, strict=True))
        assert idf["aa"] == pytest.approx(math.log(4 / 3) + 1)
        assert idf["bb"] == pytest.approx(math.log(4 / 2) + 1)

    def test_binary_presence(self) -> None:
        """Binary mode gives 1.0 per present token without IDF or norm."""
        vec = TfidfVectorizer(TfidfOptions(binary=True))
        vec.fit(["aa bb", "aa cc"])
        out = vec.transform("aa aa bb")
        assert sorted(out.entries.values()) == [1.0, 1.0]

    def test_empty_corpus(self) -> None:
        """Empty corpus yields a zero-dimension vectorizer."""
        vec = TfidfVectorizer(TfidfOptions())
        vec.fit([])
        assert vec.vocab_size() == 0
        assert vec.transform("anything").dim == 0

    def test_all_stop_words(self) -> None:
        vec = TfidfVectorizer(TfidfOptions(stop_words=frozenset({"and", "or"})))
        vectors = vec.fit_transform(["and or", "or"])
        assert vec.vocab_size() == 0
        assert all(v.nnz == 0 for v in vectors)

    def test_round_trip_state(self) -> None:
        opts = TfidfOptions(ngram_range=(4, 5), analyzer="char_wb", min_df=1)
        vec = TfidfVectorizer(opts).fit(["login-form", "search-box"])
        restored = TfidfVectorizer.from_dict(vec.to_dict())
        assert restored.options == opts
        assert restored.transform("login") == vec.transform("login")

    def test_idf_mismatch_rejected(self) -> None:
        with pytest.raises(ValueError):
            TfidfVectorizer.from_dict({"vocabulary": ["a", "b"], "idf": [1.0]})

    def test_invalid_options(self) -> None:
        with pytest.raises(ValueError):
            TfidfOptions(ngram_range=(2, 1))
