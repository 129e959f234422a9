"""Evaluator configuration loaded from ``sheetcalc.yaml`` with defaults."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

CONFIG_FILENAME = "sheetcalc.yaml"
WEB_FUNCTIONS_ENV = "SHEETCALC_WEB_FUNCTIONS"

DEFAULT_CONFIG: dict[str, Any] = {
    "web_functions": False,
    "webservice_max_url_length": 2048,
    "webservice_max_response_chars": 32767,
    "webservice_timeout_seconds": 10.0,
    "max_formula_length": 8192,
    "log_dir": None,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


class EvaluatorConfig(BaseModel):
    """Settings that change evaluation behavior.

    Web functions (ENCODEURL, WEBSERVICE, FILTERXML) are off unless
    ``web_functions`` is true.
    """

    web_functions: bool = False
    webservice_max_url_length: int = Field(default=2048, gt=0)
    webservice_max_response_chars: int = Field(default=32767, gt=0)
    webservice_timeout_seconds: float = Field(default=10.0, gt=0)
    max_formula_length: int = Field(default=8192, gt=0)
    log_dir: str | None = None
    logging_fsync: bool = False
    logging_tail_bytes: int = Field(default=2_097_152, gt=0)


def _flatten_webservice_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``webservice:`` block into flat config keys.

    Supports::

        webservice:
          max_url_length: 1024
          max_response_chars: 10000
          timeout_seconds: 5

    Maps to ``webservice_max_url_length`` and friends.
    """
    block = user_config.pop("webservice", None)
    if not isinstance(block, dict):
        return user_config
    for short_key, value in block.items():
        user_config[f"webservice_{short_key}"] = value
    return user_config


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Path | None = None) -> EvaluatorConfig:
    """Load configuration, with defaults.

    Args:
        path: A ``sheetcalc.yaml`` file, or a directory containing one.
            Missing files fall back to defaults.

    Returns:
        The validated configuration.  ``SHEETCALC_WEB_FUNCTIONS`` in the
        environment overrides ``web_functions``.
    """
    config = dict(DEFAULT_CONFIG)
    if path is not None:
        config_path = path / CONFIG_FILENAME if path.is_dir() else path
        if config_path.exists():
            user_config = yaml.safe_load(config_path.read_text()) or {}
            if not isinstance(user_config, dict):
                raise ValueError(f"{config_path}: expected a mapping at the top level")
            config.update(_flatten_webservice_block(user_config))

    env_value = os.environ.get(WEB_FUNCTIONS_ENV)
    if env_value is not None:
        config["web_functions"] = _env_flag(env_value)

    return EvaluatorConfig(**config)
