"""Canned responses served instead of calling the remote.

Mock files are named ``<operation>[.<variant>].mock.json`` and hold an
envelope in mapping form::

    {"status": 200, "body": {"success": true, "status": 200, "data": {...}}}

Every resolved mock carries the ``X-HttpBroker-Mock-Response`` header so
consumers can tell it from real traffic.
"""

from __future__ import annotations

import logging

from .envelope import HEADER_MOCK_RESPONSE, ResponseEnvelope
from .errors import ArtifactParseError
from .stores import ArtifactLocator, KeyValueStore
from .validation import artifact_key

__all__ = ("MOCK_SUFFIX", "MockResolver")

LOGGER = logging.getLogger(__name__)

MOCK_SUFFIX = ".mock.json"


class MockResolver:
    def __init__(self, mock_store: KeyValueStore, locator: ArtifactLocator) -> None:
        self.mock_store = mock_store
        self.locator = locator

    def resolve(self, operation: str, variant: str, *, no_cache: bool = False) -> ResponseEnvelope:
        """Mock envelope of ``operation`` and ``variant``.

        Raises:
            HttpConfigurationError: Not found, duplicate, unparsable, or not
                castable to an envelope.
        """
        key = artifact_key(operation, variant)
        data = None if no_cache else self.mock_store.get(key)
        if data is None:
            filename = key + MOCK_SUFFIX
            data = self.locator.load(filename)
            envelope = self._cast(data, filename)
            if not no_cache:
                self.mock_store.set(key, envelope.to_dict())
        else:
            envelope = self._cast(data, key)
        envelope.headers[HEADER_MOCK_RESPONSE] = "1"
        return envelope

    @staticmethod
    def _cast(data: object, filename: str) -> ResponseEnvelope:
        try:
            return ResponseEnvelope.from_mapping(data)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ArtifactParseError(
                f"Mock[{filename}] can't be cast to a response envelope: {exc}",
                filename=filename,
            ) from exc
