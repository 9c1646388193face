"""Client facade per provider and service.

Example:
    >>> registry = ClientRegistry(config=resolver, orchestrator=orchestrator)
    >>> client = registry.get("example", "users")
    >>> envelope = client.request("user", "retrieve", {"path": ["42"]})
    >>> envelope.body.success
    True

Configuration and argument problems found while preparing a request do not
raise; they produce an aborted request, a 500 envelope whose code names the
problem. Only misuse of the facade itself (invalid names) raises.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import ConfigResolver, validate_name
from .envelope import ResponseEnvelope
from .errors import HttpBrokerError, HttpRequestError, error_code, error_code_range
from .options import METHODS_SUPPORTED, METHOD_ALIASES
from .orchestrator import RequestOrchestrator

__all__ = ("HttpClient", "ClientRegistry")

LOGGER = logging.getLogger(__name__)


class HttpClient:
    """Issues requests to the endpoints of one provider service.

    Args:
        provider: Provider name, e.g. ``"example"``.
        service: Service name below the provider.
        config: Option resolver.
        orchestrator: Executes resolved requests.
        user_id: Scope of per-user cache entries.

    Raises:
        HttpRequestError: Invalid provider or service name.
        HttpConfigurationError: Provider or service isn't configured.
    """

    def __init__(
        self,
        provider: str,
        service: str,
        *,
        config: ConfigResolver,
        orchestrator: RequestOrchestrator,
        user_id: Optional[str] = None,
    ) -> None:
        for kind, name in (("provider", provider), ("service", service)):
            try:
                validate_name(kind, name)
            except HttpBrokerError as exc:
                raise HttpRequestError(str(exc)) from exc
        # Fail early on unconfigured provider or service.
        config.section("http-provider", provider)
        config.section("http-service", f"{provider}.{service}")
        self.provider = provider
        self.service = service
        self.config = config
        self.orchestrator = orchestrator
        self.user_id = user_id

    def __repr__(self) -> str:
        return f"HttpClient(provider={self.provider!r}, service={self.service!r})"

    def request(
        self,
        endpoint: str,
        method_or_alias: str,
        arguments: Any = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        """Execute ``endpoint`` with ``method_or_alias``.

        Args:
            endpoint: Endpoint name below the service.
            method_or_alias: ``GET``, ``POST`` ... or ``index``, ``retrieve``,
                ``create``, ``update``, ``delete``.
            arguments: ``{path, query, body}`` or ``[path, query, body]``.
            options: Per-call overrides, winning over every configured level.

        Raises:
            HttpRequestError: Invalid endpoint name.
        """
        try:
            validate_name("endpoint", endpoint)
        except HttpBrokerError as exc:
            raise HttpRequestError(str(exc)) from exc

        try:
            resolved = self.config.resolve(
                self.provider,
                self.service,
                endpoint,
                method_or_alias,
                options,
                user_id=self.user_id,
            )
        except HttpBrokerError as exc:
            operation = self.config.operation(self.provider, self.service, endpoint, method_or_alias)
            log_type = (options or {}).get("log_type")
            return self.orchestrator.aborted(operation, exc.code, exc, log_type)
        return self.orchestrator.execute(resolved, arguments)

    @staticmethod
    def methods_supported() -> Dict[str, Tuple[str, ...]]:
        """Supported HTTP methods and their aliases."""
        aliases: Dict[str, Tuple[str, ...]] = {}
        for method in METHODS_SUPPORTED:
            aliases[method] = tuple(a for a, m in METHOD_ALIASES.items() if m == method)
        return aliases

    def error_code(self, name: str = "") -> int:
        """Reported code of ``name``; ``unknown`` for unknown and empty names."""
        return error_code(name or "unknown", offset=self.orchestrator.settings.error_code_offset)

    def error_code_range(self) -> Tuple[int, int]:
        return error_code_range(offset=self.orchestrator.settings.error_code_offset)


class ClientRegistry:
    """Application-owned map of clients keyed by provider and service.

    A client whose construction raised is not kept; the next :meth:`get`
    tries again.
    """

    def __init__(
        self,
        *,
        config: ConfigResolver,
        orchestrator: RequestOrchestrator,
        user_id: Optional[str] = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.user_id = user_id
        self._clients: Dict[Tuple[str, str], HttpClient] = {}
        self._lock = threading.Lock()

    def get(self, provider: str, service: str) -> HttpClient:
        key = (provider, service)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = HttpClient(
                    provider,
                    service,
                    config=self.config,
                    orchestrator=self.orchestrator,
                    user_id=self.user_id,
                )
                self._clients[key] = client
            return client

    def __contains__(self, key: object) -> bool:
        return key in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()
