"""Process-level settings for the broker.

Values come from ``HTTPBROKER_*`` environment variables, e.g.
``HTTPBROKER_ERROR_CODE_OFFSET=2900``. Per-request behaviour lives in
:mod:`HttpBroker.options`; these are the knobs an operator sets once.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import DEFAULT_ERROR_CODE_OFFSET

__all__ = ("BrokerSettings",)


class BrokerSettings(BaseSettings):
    """Environment-derived broker settings."""

    model_config = SettingsConfigDict(env_prefix="HTTPBROKER_", case_sensitive=False, extra="ignore")

    error_code_offset: int = Field(
        default=DEFAULT_ERROR_CODE_OFFSET, description="Added to every reported error code"
    )
    log_type: str = Field(default="http-client", description="Log type of request log records")
    cacheable_time_to_live: int = Field(
        default=3600, description="Response cache TTL (seconds) when cacheable has no ttl"
    )
    rule_set_paths: List[Path] = Field(
        default_factory=list, description="Directories searched for validation rule sets"
    )
    rule_set_legacy_path: Path = Field(
        default=Path("conf/json/http/response-validation-rule-sets"),
        description="Searched after rule_set_paths",
    )
    mock_paths: List[Path] = Field(
        default_factory=list, description="Directories searched for response mocks"
    )
    mock_legacy_path: Path = Field(
        default=Path("conf/json/http/response-mocks"), description="Searched after mock_paths"
    )
    response_mocking_disabled: bool = Field(
        default=False, description="Ignore mock_response options (production)"
    )
    application_title: str = Field(
        default="the application", description="Inserted into user-facing error messages"
    )
    config_file: Optional[Path] = Field(default=None, description="YAML/JSON request config")
    cache_dir: Optional[Path] = Field(
        default=None, description="Directory of file-backed stores; in-memory when unset"
    )

    @field_validator("error_code_offset", "cacheable_time_to_live")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Must be >= 0")
        return v
