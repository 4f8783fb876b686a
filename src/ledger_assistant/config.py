"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_SYSTEM_PROMPT = """\
You are a smart accounting assistant for a small business with real-time access to its books.
You help with financial questions, data analysis and general bookkeeping tasks.
Be professional, accurate, concise and helpful.

Use the available functions whenever the user asks about customers, invoices, debts,
payments or other financial details, so that answers are based on current data.
When you receive function results, organise them clearly for the user.
If you are unsure about specific tax regulations, recommend consulting a certified accountant.
"""


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 4
    retry_base_delay: float = 1.0

    @field_validator("max_retries")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_retries must be at least 1")
        return value


class QuotaDefaults(BaseModel):
    """Per-tenant settings applied when a tenant uses the assistant for the first time."""

    enabled: bool = True
    daily_limit: int = 100
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1000
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class AssistantConfig(BaseModel):
    history_window: int = 10
    max_result_rows: int = 200
    function_timeout: float = 20.0
    defaults: QuotaDefaults = Field(default_factory=QuotaDefaults)


class StorageConfig(BaseModel):
    db_path: str = "./data/ledger_assistant.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    anthropic: Optional[AnthropicConfig] = None
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
