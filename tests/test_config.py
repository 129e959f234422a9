"""Tests for evaluator configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from sheetcalc.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    WEB_FUNCTIONS_ENV,
    EvaluatorConfig,
    load_config,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(WEB_FUNCTIONS_ENV, raising=False)


class TestDefaults:
    def test_model_defaults_match_table(self) -> None:
        assert EvaluatorConfig().model_dump() == DEFAULT_CONFIG

    def test_no_path(self) -> None:
        config = load_config()
        assert config.web_functions is False
        assert config.webservice_max_response_chars == 32767

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "absent.yaml") == EvaluatorConfig()

    def test_directory_without_config(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == EvaluatorConfig()

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        assert load_config(tmp_path) == EvaluatorConfig()


class TestLoadFile:
    def test_directory_lookup(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("web_functions: true\nmax_formula_length: 100\n")
        config = load_config(tmp_path)
        assert config.web_functions is True
        assert config.max_formula_length == 100

    def test_explicit_file(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("log_dir: logs\nlogging_fsync: true\n")
        config = load_config(path)
        assert config.log_dir == "logs"
        assert config.logging_fsync is True

    def test_webservice_block_flattened(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(
            "webservice:\n"
            "  max_url_length: 1024\n"
            "  max_response_chars: 10000\n"
            "  timeout_seconds: 2.5\n"
        )
        config = load_config(tmp_path)
        assert config.webservice_max_url_length == 1024
        assert config.webservice_max_response_chars == 10000
        assert config.webservice_timeout_seconds == 2.5

    def test_non_mapping_document(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(tmp_path)

    @pytest.mark.parametrize(
        "body",
        [
            "webservice_max_url_length: 0\n",
            "webservice_timeout_seconds: -1\n",
            "max_formula_length: lots\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, body: str) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(body)
        with pytest.raises(ValidationError):
            load_config(tmp_path)


class TestEnvironmentOverride:
    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_enables(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv(WEB_FUNCTIONS_ENV, value)
        assert load_config().web_functions is True

    def test_disables_over_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("web_functions: true\n")
        monkeypatch.setenv(WEB_FUNCTIONS_ENV, "0")
        assert load_config(tmp_path).web_functions is False
