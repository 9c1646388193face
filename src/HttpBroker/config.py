# === NAVMAP v1 ===
# {
#   "module": "HttpBroker.config",
#   "purpose": "Hierarchical request configuration: provider < service < endpoint < method < call.",
#   "sections": [
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "merge-dicts",
#       "name": "_merge_dicts",
#       "anchor": "function-merge-dicts",
#       "kind": "function"
#     },
#     {
#       "id": "configresolver",
#       "name": "ConfigResolver",
#       "anchor": "class-configresolver",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Hierarchical request configuration.

A configuration file (YAML or JSON) declares options per level::

    http:
      response-mocking-disabled: false
    http-provider:
      example:
        base_url: https://api.example.com
    http-service:
      example.users:
        service_path: /v1
    http-endpoint:
      example.users.user:
        endpoint_path: users
    http-method:
      example.users.user.retrieve:
        cacheable: {ttl: 60}
        validate_response: true

Options of later levels win: provider < service < endpoint < method < per-call
override. Option names may be written with hyphens or underscores. Every level
must be declared, even if empty. ``cacheable`` is allowed at method level and
per call only, since a cached response is specific to one operation.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .errors import ErrorCode, HttpConfigurationError
from .options import RequestOptions, resolve_method
from .settings import BrokerSettings

__all__ = ("SECTIONS", "NAME_PATTERN", "validate_name", "ConfigResolver")

_LOGGER = logging.getLogger(__name__)

SECTIONS = ("http-provider", "http-service", "http-endpoint", "http-method")

NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_\-]*$")

# Levels where cacheable is illegal.
_NON_CACHEABLE_SECTIONS = ("http-provider", "http-service", "http-endpoint")

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON config file.

    Raises:
        HttpConfigurationError: Missing, unreadable, unparsable or unsupported.
    """
    p = Path(path)
    if not p.exists():
        raise HttpConfigurationError(f"Config file not found: {path}")
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise HttpConfigurationError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise HttpConfigurationError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise HttpConfigurationError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise HttpConfigurationError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise HttpConfigurationError(f"Config file {path} must hold a mapping")
    return data


def _merge_dicts(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = dict(value) if isinstance(value, Mapping) else value
    return result


def _normalize_keys(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Hyphenated option names to underscored, one level deep plus policies."""
    normalized: Dict[str, Any] = {}
    for key, value in options.items():
        name = str(key).replace("-", "_")
        if name != "headers" and isinstance(value, Mapping):
            value = {str(k).replace("-", "_"): v for k, v in value.items()}
        normalized[name] = value
    return normalized


def validate_name(kind: str, name: str) -> None:
    """Provider, service and endpoint names: letter first, no dots.

    Raises:
        HttpConfigurationError: Invalid name.
    """
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        raise HttpConfigurationError(
            f"Arg {kind}[{name}] is not a valid name; must match {NAME_PATTERN.pattern}."
        )


# ============================================================================
# Resolver
# ============================================================================


class ConfigResolver:
    """Produces :class:`RequestOptions` from layered configuration.

    Args:
        data: Parsed configuration, see module docstring.
        settings: Broker settings; the mock kill switch is honoured from both.
    """

    def __init__(
        self, data: Optional[Mapping[str, Any]] = None, *, settings: Optional[BrokerSettings] = None
    ) -> None:
        self.data: Dict[str, Any] = dict(data or {})
        self.settings = settings or BrokerSettings()
        for section in SECTIONS:
            value = self.data.get(section)
            if value is not None and not isinstance(value, Mapping):
                raise HttpConfigurationError(f"Config section[{section}] must be a mapping")

    @classmethod
    def from_file(cls, path: Path, *, settings: Optional[BrokerSettings] = None) -> "ConfigResolver":
        return cls(_read_file(path), settings=settings)

    @property
    def response_mocking_disabled(self) -> bool:
        general = self.data.get("http") or {}
        return bool(
            self.settings.response_mocking_disabled
            or general.get("response-mocking-disabled")
            or general.get("response_mocking_disabled")
        )

    def section(self, section: str, name: str) -> Dict[str, Any]:
        """Options declared for ``name`` in ``section``.

        Raises:
            HttpConfigurationError: Not declared, or not a mapping.
        """
        entries = self.data.get(section) or {}
        if name not in entries:
            raise HttpConfigurationError(f"Config {section}[{name}] is not declared.")
        options = entries[name]
        if options is None:
            return {}
        if not isinstance(options, Mapping):
            raise HttpConfigurationError(f"Config {section}[{name}] must be a mapping.")
        options = _normalize_keys(options)
        if section in _NON_CACHEABLE_SECTIONS and "cacheable" in options:
            raise HttpConfigurationError(
                f"Config {section}[{name}] option cacheable is only allowed at method level."
            )
        return options

    def operation(self, provider: str, service: str, endpoint: str, method_or_alias: str) -> str:
        return f"{provider}.{service}.{endpoint}.{method_or_alias}"

    def merged(
        self,
        provider: str,
        service: str,
        endpoint: str,
        method_or_alias: str,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Raw options of all levels merged, later levels winning."""
        for kind, name in (("provider", provider), ("service", service), ("endpoint", endpoint)):
            validate_name(kind, name)
        names = (
            ("http-provider", provider),
            ("http-service", f"{provider}.{service}"),
            ("http-endpoint", f"{provider}.{service}.{endpoint}"),
            ("http-method", self.operation(provider, service, endpoint, method_or_alias)),
        )
        merged: Dict[str, Any] = {}
        for section, name in names:
            merged = _merge_dicts(merged, self.section(section, name))
        if overrides:
            merged = _merge_dicts(merged, _normalize_keys(overrides))
        return merged

    def resolve(
        self,
        provider: str,
        service: str,
        endpoint: str,
        method_or_alias: str,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        user_id: Optional[str] = None,
    ) -> RequestOptions:
        """Fully resolved options of one request.

        Raises:
            HttpConfigurationError: Missing level, invalid name, misplaced
                option; ``code`` is ``local-option`` when option values fail
                validation.
            HttpRequestError: Unsupported method or alias.
        """
        method = resolve_method(method_or_alias)
        options = self.merged(provider, service, endpoint, method_or_alias, overrides)
        options["operation"] = self.operation(provider, service, endpoint, method_or_alias)
        options["method"] = method

        cacheable = options.get("cacheable")
        if cacheable:
            cacheable = {} if cacheable is True else dict(cacheable)
            cacheable.setdefault("scope", user_id)
            options["cacheable"] = cacheable

        if options.get("mock_response") and self.response_mocking_disabled:
            _LOGGER.debug("Response mocking disabled, ignoring mock_response of %s", options["operation"])
            options["mock_response"] = None

        try:
            return RequestOptions.model_validate(options)
        except ValidationError as exc:
            raise HttpConfigurationError(
                f"Options of {options['operation']} are invalid: {exc.error_count()} error(s).",
                code=ErrorCode.LOCAL_OPTION,
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
