"""
Tests for settings loading and structured logging helpers.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-CF-N-01 | Empty config dir | Equivalence – normal | Defaults | - |
| TC-CF-N-02 | settings.yaml | Equivalence – normal | Values loaded | - |
| TC-CF-N-03 | local.yaml settings section | Equivalence – normal | Deep-merged override | - |
| TC-CF-N-04 | FORMSIFT_ env vars | Equivalence – normal | Highest priority, typed | - |
| TC-CF-N-05 | Linear / CRF configs from settings | Equivalence – normal | Settings values used | - |
| TC-CF-N-06 | LogContext | Equivalence – normal | Bound inside, unbound after | - |
| TC-CF-N-07 | Nested LogContext, same key | Equivalence – normal | Outer value restored | - |
| TC-CF-N-08 | Parallel folds | Equivalence – normal | Workers see caller context plus fold | - |
| TC-CF-N-09 | configure_logging console / file | Equivalence – normal | Events written to log file | - |
| TC-CF-A-01 | Unknown training key | Abnormal – validation | ValidationError | - |
"""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from pydantic import ValidationError

from formsift.classifier.fieldtype import crf_config_from_settings
from formsift.classifier.linear import LinearTrainConfig
from formsift.evaluation import EvalResult, _run_folds
from formsift.utils.config import _deep_merge, get_settings
from formsift.utils.logging import LogContext, configure_logging, get_logger

pytestmark = pytest.mark.unit


class TestSettings:
    """Tests for get_settings."""

    def test_defaults(self) -> None:
        settings = get_settings()
        assert settings.training.form_c == 5.0
        assert settings.crf.c2 == 0.1
        assert settings.tfidf.smooth_idf is True
        assert settings.evaluation.folds == 10
        assert settings.inference.threshold == 0.05

    def test_yaml(self, isolated_settings: Path) -> None:
        (isolated_settings / "settings.yaml").write_text(
            "training:\n  page_c: 2.5\ncrf:\n  max_iter: 7\n", encoding="utf-8"
        )
        get_settings.cache_clear()

        settings = get_settings()
        assert settings.training.page_c == 2.5
        assert settings.training.form_c == 5.0
        assert settings.crf.max_iter == 7

    def test_local_override(self, isolated_settings: Path) -> None:
        (isolated_settings / "settings.yaml").write_text("crf:\n  c2: 0.2\n  max_iter: 5\n", encoding="utf-8")
        (isolated_settings / "local.yaml").write_text("settings:\n  crf:\n    c2: 0.9\n", encoding="utf-8")
        get_settings.cache_clear()

        settings = get_settings()
        assert settings.crf.c2 == 0.9
        assert settings.crf.max_iter == 5

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FORMSIFT_CRF__C2", "0.5")
        monkeypatch.setenv("FORMSIFT_EVALUATION__WORKERS", "4")
        monkeypatch.setenv("FORMSIFT_TFIDF__SMOOTH_IDF", "false")
        get_settings.cache_clear()

        settings = get_settings()
        assert settings.crf.c2 == 0.5
        assert settings.evaluation.workers == 4
        assert settings.tfidf.smooth_idf is False

    def test_unknown_training_key(self, isolated_settings: Path) -> None:
        (isolated_settings / "settings.yaml").write_text("training:\n  bogus: 1\n", encoding="utf-8")
        get_settings.cache_clear()
        with pytest.raises(ValidationError):
            get_settings()

    def test_deep_merge(self) -> None:
        merged = _deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}


class TestTrainConfigs:
    """Tests for training configs built from settings."""

    def test_linear_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FORMSIFT_TRAINING__PAGE_C", "1.5")
        monkeypatch.setenv("FORMSIFT_TRAINING__LBFGS_HISTORY", "3")
        get_settings.cache_clear()

        config = LinearTrainConfig.from_settings("page")
        assert config.c == 1.5
        assert config.history == 3
        assert LinearTrainConfig.from_settings("form").c == 5.0

    def test_crf_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FORMSIFT_CRF__MAX_ITER", "12")
        get_settings.cache_clear()

        config = crf_config_from_settings()
        assert config.max_iter == 12
        assert config.c2 == 0.1


class TestLogging:
    """Tests for LogContext and configure_logging."""

    @pytest.fixture(autouse=True)
    def clean_context(self) -> Iterator[None]:
        structlog.contextvars.clear_contextvars()
        yield
        structlog.contextvars.clear_contextvars()
        structlog.reset_defaults()
        root = logging.getLogger()
        for handler in [h for h in root.handlers if isinstance(h, logging.FileHandler)]:
            root.removeHandler(handler)
            handler.close()

    def test_binds_and_unbinds(self) -> None:
        with LogContext(stage="form", fold=2):
            assert structlog.contextvars.get_contextvars() == {"stage": "form", "fold": 2}
        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_restores_outer(self) -> None:
        with LogContext(command="evaluate", fold=0):
            with LogContext(fold=1):
                assert structlog.contextvars.get_contextvars() == {"command": "evaluate", "fold": 1}
            assert structlog.contextvars.get_contextvars() == {"command": "evaluate", "fold": 0}

    def test_parallel_folds_keep_context(self) -> None:
        seen: dict[int, dict] = {}

        def run(test_idx: list[int]) -> EvalResult:
            seen[test_idx[0]] = structlog.contextvars.get_contextvars()
            return EvalResult()

        with LogContext(command="evaluate"):
            _run_folds("form", [[0], [1], [2]], run, workers=2)

        assert seen == {
            i: {"command": "evaluate", "stage": "form", "fold": i} for i in range(3)
        }

    def test_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "formsift.log"
        configure_logging(log_level="INFO", log_file=log_file, json_format=False)

        with LogContext(fold=4):
            get_logger("formsift.test").info("Fold finished", correct=3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "Fold finished" in text
        assert "fold=4" in text
