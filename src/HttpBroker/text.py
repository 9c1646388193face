"""User-facing message text.

The broker never exposes fault detail to the ultimate caller; ``body.message``
is always resolved from a message key such as ``http:error:timeout``.
:class:`CatalogTextResolver` ships an English catalog and can be extended from
a YAML file of ``key: text`` pairs. Placeholders are written ``{name}``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

import yaml

from .errors import ErrorCode, HttpConfigurationError

__all__ = (
    "MESSAGE_KEY_PREFIX",
    "MESSAGE_KEY_USER_REPORT",
    "DEFAULT_MESSAGES",
    "TextResolver",
    "CatalogTextResolver",
    "message_key",
)

LOGGER = logging.getLogger(__name__)

MESSAGE_KEY_PREFIX = "http:error:"
MESSAGE_KEY_USER_REPORT = "http:error-suffix_user-report-error"

_GENERIC = "Sorry, {application-title} failed to communicate with a remote service."

DEFAULT_MESSAGES: Dict[str, str] = {
    MESSAGE_KEY_PREFIX + "unknown": _GENERIC,
    MESSAGE_KEY_PREFIX + "local-unknown": "Sorry, {application-title} encountered an internal error.",
    MESSAGE_KEY_PREFIX + "local-algo": "Sorry, {application-title} encountered an internal error.",
    MESSAGE_KEY_PREFIX + "local-use": "Sorry, {application-title} made an invalid request.",
    MESSAGE_KEY_PREFIX + "local-configuration": "Sorry, {application-title} is misconfigured.",
    MESSAGE_KEY_PREFIX + "local-option": "Sorry, {application-title} made a request with invalid options.",
    MESSAGE_KEY_PREFIX + "local-init": "Sorry, {application-title} failed to initialise a connection.",
    MESSAGE_KEY_PREFIX + "host-unavailable": "Sorry, a remote service is unreachable.",
    MESSAGE_KEY_PREFIX + "service-unavailable": "Sorry, a remote service is temporarily unavailable.",
    MESSAGE_KEY_PREFIX + "too-many-redirects": _GENERIC,
    MESSAGE_KEY_PREFIX + "timeout": "Sorry, a remote service took too long to respond. Please try again later.",
    MESSAGE_KEY_PREFIX + "timeout-propagated": "Sorry, a remote service took too long to respond. Please try again later.",
    MESSAGE_KEY_PREFIX + "response-none": "Sorry, a remote service didn't respond.",
    MESSAGE_KEY_PREFIX + "remote": "Sorry, a remote service failed.",
    MESSAGE_KEY_PREFIX + "remote-propagated": "Sorry, a remote service failed.",
    MESSAGE_KEY_PREFIX + "malign-status-unexpected": "Sorry, a remote service failed.",
    MESSAGE_KEY_PREFIX + "endpoint-not-found": _GENERIC,
    MESSAGE_KEY_PREFIX + "resource-not-found": "Sorry, the requested item doesn't exist.",
    MESSAGE_KEY_PREFIX + "unauthenticated": "Sorry, {application-title} isn't signed in to a remote service.",
    MESSAGE_KEY_PREFIX + "unauthorized": "Sorry, {application-title} isn't allowed to do that.",
    MESSAGE_KEY_PREFIX + "remote-validation-bad": "Sorry, a remote service rejected the request.",
    MESSAGE_KEY_PREFIX + "remote-validation-failed": "Sorry, a remote service rejected the request.",
    MESSAGE_KEY_PREFIX + "remote-conflict": "Sorry, the request conflicts with the current state of the item.",
    MESSAGE_KEY_PREFIX + "response-type": _GENERIC,
    MESSAGE_KEY_PREFIX + "response-format": _GENERIC,
    MESSAGE_KEY_PREFIX + "benign-status-unexpected": _GENERIC,
    MESSAGE_KEY_PREFIX + "header-missing": _GENERIC,
    MESSAGE_KEY_PREFIX + "response-validation": "Sorry, a remote service responded with unexpected data.",
    MESSAGE_KEY_USER_REPORT: "Please report this error ({error}) to the support of {application-title}.",
}


def message_key(code: ErrorCode) -> str:
    return MESSAGE_KEY_PREFIX + code.slug


class TextResolver(Protocol):
    def resolve(self, key: str, variables: Mapping[str, Any]) -> str: ...


class CatalogTextResolver:
    """Resolves message keys from an in-memory catalog.

    Unknown ``http:error:*`` keys fall back to ``http:error:unknown``; any
    other unknown key resolves to the key itself.
    """

    def __init__(self, messages: Optional[Mapping[str, str]] = None) -> None:
        self.messages: Dict[str, str] = dict(DEFAULT_MESSAGES)
        if messages:
            self.messages.update(messages)

    @classmethod
    def from_file(cls, path: Path) -> "CatalogTextResolver":
        """Default catalog overlaid with the ``key: text`` pairs of a YAML file."""
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise HttpConfigurationError(f"Message catalog[{path}] is not readable: {exc}") from exc
        if not isinstance(data, Mapping):
            raise HttpConfigurationError(f"Message catalog[{path}] must be a mapping")
        return cls({str(key): str(value) for key, value in data.items()})

    def resolve(self, key: str, variables: Mapping[str, Any]) -> str:
        text = self.messages.get(key)
        if text is None:
            if key.startswith(MESSAGE_KEY_PREFIX):
                text = self.messages[MESSAGE_KEY_PREFIX + "unknown"]
            else:
                LOGGER.debug("No message text for key %s", key)
                return key
        for name, value in variables.items():
            text = text.replace("{" + name + "}", str(value))
        return text
