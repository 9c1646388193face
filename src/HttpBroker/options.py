"""
Request options and arguments.

:class:`RequestOptions` is the fully resolved, immutable option set one request
runs with. It is produced by :mod:`HttpBroker.config` (or built directly by a
caller) and only ever read by the orchestrator, classifier and adapter.

Policy options accept the loose shapes found in configuration files and
normalise them on the way in:

- ``cacheable``: ``true`` or ``{ttl, refresh, anybody, scope}``
- ``validate_response``: ``true`` or ``{rule_set_variants: "a,b", no_cache_rules}``
- ``mock_response``: ``true`` or ``{variant, no_cache_mock}``
- ``log_warning_on_status``: ``{"503": true}`` or ``[503]``

A truthy ``mock_response`` always drops ``cacheable``; mocked responses are
never read from nor written to the response cache.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import HttpRequestError

__all__ = (
    "METHODS_SUPPORTED",
    "METHOD_ALIASES",
    "WILDCARD_SCOPE",
    "ANONYMOUS_SCOPE",
    "resolve_method",
    "CachePolicy",
    "ValidationPolicy",
    "MockPolicy",
    "RequestOptions",
    "RequestArguments",
    "normalize_arguments",
)

METHODS_SUPPORTED: Tuple[str, ...] = ("HEAD", "GET", "POST", "PUT", "DELETE")

METHOD_ALIASES: Dict[str, str] = {
    "index": "GET",
    "retrieve": "GET",
    "create": "POST",
    "update": "PUT",
    "delete": "DELETE",
}

# Dot, because a cache key may not contain '*'.
WILDCARD_SCOPE = "."
ANONYMOUS_SCOPE = "anonymous"

DEFAULT_VARIANT = "default"


def resolve_method(method_or_alias: str) -> str:
    """Translate an alias (``retrieve``, ``create`` ...) to its HTTP method.

    Raises:
        HttpRequestError: Neither a supported method nor an alias.
    """
    if method_or_alias in METHOD_ALIASES:
        return METHOD_ALIASES[method_or_alias]
    if method_or_alias in METHODS_SUPPORTED:
        return method_or_alias
    raise HttpRequestError(
        f"Method[{method_or_alias}] is not among supported methods "
        f"{'|'.join(METHODS_SUPPORTED)} or aliases {'|'.join(METHOD_ALIASES)}."
    )


# ============================================================================
# Policy Models
# ============================================================================


class CachePolicy(BaseModel):
    """Cache-aside policy of one request."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    ttl: Optional[int] = Field(default=None, description="Seconds; None means settings default")
    refresh: bool = Field(default=False, description="Skip cache read, still write")
    anybody: bool = Field(default=False, description="Share the entry across all callers")
    scope: Optional[str] = Field(default=None, description="Caller identifier")

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("ttl must be >= 0")
        # Zero means unset, like an absent ttl.
        return v or None

    def key(self, operation: str) -> str:
        """Cache key ``operation[user-<scope>]``."""
        scope = WILDCARD_SCOPE if self.anybody else (self.scope or ANONYMOUS_SCOPE)
        return f"{operation}[user-{scope}]"


class ValidationPolicy(BaseModel):
    """Rule sets to try, in order; first pass wins."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    rule_set_variants: Tuple[str, ...] = Field(default=(DEFAULT_VARIANT,))
    no_cache_rules: bool = False

    @field_validator("rule_set_variants", mode="before")
    @classmethod
    def split_variants(cls, v: Any) -> Tuple[str, ...]:
        if v is None:
            return (DEFAULT_VARIANT,)
        if isinstance(v, str):
            v = v.split(",")
        variants = tuple(str(item).replace(" ", "") for item in v)
        variants = tuple(item for item in variants if item)
        # Duplicates would only validate twice against the same rule set.
        return tuple(dict.fromkeys(variants)) or (DEFAULT_VARIANT,)


class MockPolicy(BaseModel):
    """Serve a canned response instead of calling the remote."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    variant: str = DEFAULT_VARIANT
    no_cache_mock: bool = False

    @field_validator("variant", mode="before")
    @classmethod
    def default_variant(cls, v: Any) -> Any:
        return v or DEFAULT_VARIANT


# ============================================================================
# Request Options
# ============================================================================


class RequestOptions(BaseModel):
    """Resolved, immutable options of one request."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    operation: str = Field(description="provider.service.endpoint.METHODorAlias")
    method: str = Field(default="GET")
    base_url: str = Field(min_length=1)
    service_path: str = ""
    endpoint_path: str = Field(min_length=1)

    cacheable: Optional[CachePolicy] = None
    validate_response: Optional[ValidationPolicy] = None
    mock_response: Optional[MockPolicy] = None

    require_response_headers: Tuple[str, ...] = ()
    err_on_endpoint_not_found: bool = False
    err_on_resource_not_found: bool = False
    retry_on_unavailable: int = Field(default=0, description="Retry delay, ms; 0 disables")
    log_warning_on_status: FrozenSet[int] = frozenset()
    log_type: Optional[str] = None
    debug_dump: bool = False
    get_headers: bool = False

    # Transport.
    connect_timeout: float = 5.0
    request_timeout: float = 30.0
    max_redirects: int = 5
    ssl_verify: bool = True
    headers: Dict[str, str] = Field(default_factory=dict)
    accept: str = "application/json"

    @model_validator(mode="before")
    @classmethod
    def mock_suppresses_cache(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and data.get("mock_response"):
            data = dict(data)
            data["cacheable"] = None
        return data

    @field_validator("cacheable", "validate_response", "mock_response", mode="before")
    @classmethod
    def coerce_policy_flag(cls, v: Any) -> Any:
        if v is None or v is False:
            return None
        if v is True:
            return {}
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        if v not in METHODS_SUPPORTED:
            raise ValueError(f"method must be one of {METHODS_SUPPORTED}")
        return v

    @field_validator("retry_on_unavailable", "max_redirects")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Must be >= 0")
        return v

    @field_validator("connect_timeout", "request_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("log_warning_on_status", mode="before")
    @classmethod
    def coerce_status_list(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, Mapping):
            return frozenset(int(status) for status, flag in v.items() if flag)
        return v

    @field_validator("require_response_headers", mode="before")
    @classmethod
    def coerce_header_list(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v

    @property
    def endpoint_url(self) -> str:
        """Base URL joined with service and endpoint path."""
        parts = [self.base_url.rstrip("/")]
        for segment in (self.service_path, self.endpoint_path):
            segment = segment.strip("/")
            if segment:
                parts.append(segment)
        return "/".join(parts)

    def with_overrides(self, **changes: Any) -> "RequestOptions":
        """Validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


# ============================================================================
# Request Arguments
# ============================================================================

_ARGUMENT_BUCKETS = ("path", "query", "body")


@dataclass(frozen=True)
class RequestArguments:
    """Path segments, query parameters and body of one request."""

    path: Tuple[str, ...] = ()
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None

    def url(self, endpoint_url: str) -> str:
        """``endpoint_url`` with the quoted path segments appended."""
        if not self.path:
            return endpoint_url
        return "/".join([endpoint_url] + [quote(segment, safe="") for segment in self.path])


def _bucketed(path: Any = None, query: Any = None, body: Any = None) -> RequestArguments:
    if path is None:
        segments: Tuple[str, ...] = ()
    elif isinstance(path, (str, int)):
        segments = (str(path),)
    elif isinstance(path, Sequence):
        segments = tuple(str(segment) for segment in path)
    else:
        raise HttpRequestError(f"Arguments path must be a list, not {type(path).__name__}.")
    if query is None:
        query = {}
    elif not isinstance(query, Mapping):
        raise HttpRequestError(f"Arguments query must be a mapping, not {type(query).__name__}.")
    return RequestArguments(path=segments, query=dict(query), body=body)


def normalize_arguments(arguments: Any) -> RequestArguments:
    """Normalise ``{path, query, body}`` or positional ``[path, query, body]``.

    Numerically keyed mappings (``{0: path, 1: query}``) count as positional.

    Raises:
        HttpRequestError: Arguments aren't nested in valid buckets.
    """
    if arguments is None:
        return RequestArguments()
    if isinstance(arguments, RequestArguments):
        return arguments
    if isinstance(arguments, Mapping):
        if not arguments:
            return RequestArguments()
        keys = list(arguments.keys())
        if all(isinstance(key, int) or (isinstance(key, str) and key.isdigit()) for key in keys):
            ordered = sorted(int(key) for key in keys)
            if ordered != list(range(len(ordered))) or len(ordered) > 3:
                raise HttpRequestError(
                    f"Arguments keys[{', '.join(map(str, keys))}] are not valid positional keys."
                )
            lookup = {int(key): value for key, value in arguments.items()}
            return _bucketed(*(lookup[index] for index in ordered))
        unknown = [key for key in keys if key not in _ARGUMENT_BUCKETS]
        if unknown:
            raise HttpRequestError(
                f"Arguments keys[{', '.join(map(str, keys))}] don't match keys"
                f"[{', '.join(_ARGUMENT_BUCKETS)}], perhaps forgot to nest arguments."
            )
        return _bucketed(**arguments)
    if isinstance(arguments, (list, tuple)):
        if len(arguments) > 3:
            raise HttpRequestError("Positional arguments take at most path, query and body.")
        return _bucketed(*arguments)
    raise HttpRequestError(f"Arguments must be a mapping or a list, not {type(arguments).__name__}.")
