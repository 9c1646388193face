"""Response validation against named rule sets.

A rule set is a JSON Schema document stored as
``<operation>[.<variant>].validation-rule-set.json``; the variant ``default``
has no infix. Rule sets are tried in the caller's order and validation stops at
the first pass, so strict rule sets should go before forgiving ones.

Parsed rule sets are cached under ``<operation>[.<variant>]`` unless the policy
says ``no_cache_rules``. A rule set that cannot be produced (missing file,
duplicate filename, invalid JSON, invalid schema) aborts validation with an
:class:`~HttpBroker.errors.HttpConfigurationError`; no partial pass is
attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from .errors import ArtifactParseError
from .options import DEFAULT_VARIANT
from .stores import ArtifactLocator, KeyValueStore

__all__ = ("RULE_SET_SUFFIX", "ValidationResult", "ValidationEngine", "artifact_key")

LOGGER = logging.getLogger(__name__)

RULE_SET_SUFFIX = ".validation-rule-set.json"


def artifact_key(operation: str, variant: str) -> str:
    """``operation`` for the default variant, else ``operation.variant``."""
    return operation if variant == DEFAULT_VARIANT else f"{operation}.{variant}"


@dataclass
class ValidationResult:
    passed: bool
    # Variant -> discrepancies, for every variant that rejected the data.
    records: Dict[str, List[str]] = field(default_factory=dict)
    passed_variant: str | None = None


class ValidationEngine:
    """Validates response data against cached or file-backed rule sets."""

    def __init__(self, rule_set_store: KeyValueStore, locator: ArtifactLocator) -> None:
        self.rule_set_store = rule_set_store
        self.locator = locator

    def rule_sets(
        self, operation: str, variants: Sequence[str], *, no_cache: bool = False
    ) -> Dict[str, Mapping[str, Any]]:
        """Rule set per variant, in the given order.

        Raises:
            HttpConfigurationError: Any rule set could not be produced.
        """
        rule_sets: Dict[str, Mapping[str, Any] | None] = {}
        to_read: Dict[str, str] = {}
        for variant in variants:
            key = artifact_key(operation, variant)
            cached = None if no_cache else self.rule_set_store.get(key)
            rule_sets[variant] = cached
            if cached is None:
                to_read[variant] = key + RULE_SET_SUFFIX

        if to_read:
            paths = self.locator.find_all(to_read.values())
            for variant, filename in to_read.items():
                rule_set = self.locator.parse(paths[filename])
                self._check_schema(rule_set, filename)
                rule_sets[variant] = rule_set
            if not no_cache:
                for variant in to_read:
                    self.rule_set_store.set(artifact_key(operation, variant), rule_sets[variant])
        return rule_sets  # type: ignore[return-value]

    @staticmethod
    def _check_schema(rule_set: Any, filename: str) -> None:
        if not isinstance(rule_set, Mapping):
            raise ArtifactParseError(
                f"Rule set file[{filename}] is not a JSON object.", filename=filename
            )
        try:
            Draft202012Validator.check_schema(rule_set)
        except SchemaError as exc:
            raise ArtifactParseError(
                f"Rule set file[{filename}] is not a valid schema: {exc.message}",
                filename=filename,
            ) from exc

    @staticmethod
    def challenge(data: Any, rule_set: Mapping[str, Any]) -> List[str]:
        """Discrepancies of ``data`` against ``rule_set``; empty means pass."""
        validator = Draft202012Validator(rule_set)
        records = []
        for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
            location = "/".join(str(part) for part in error.absolute_path) or "(root)"
            records.append(f"{location}: {error.message}")
        return records

    def validate(
        self,
        data: Any,
        variants: Sequence[str],
        *,
        operation: str,
        no_cache: bool = False,
    ) -> ValidationResult:
        """Try each variant in order; stop at the first pass."""
        rule_sets = self.rule_sets(operation, variants, no_cache=no_cache)
        result = ValidationResult(passed=False)
        for variant, rule_set in rule_sets.items():
            records = self.challenge(data, rule_set)
            if not records:
                result.passed = True
                result.passed_variant = variant
                break
            result.records[variant] = records
        LOGGER.debug(
            "Validated %s against %s: passed=%s", operation, list(rule_sets), result.passed
        )
        return result
