"""Property validation rules used by the validation extension service."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

__all__ = [
    "PropertyRule",
    "ValidationFailure",
    "ValidationResult",
    "ValidationRuleError",
    "load_validation_rules",
    "validate_properties",
]


class ValidationRuleError(ValueError):
    """Raised when validation rules cannot be loaded."""


_TYPE_NAMES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "double": (float,),
    "float": (float,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
    "null": (type(None),),
}


@dataclass(frozen=True)
class PropertyRule:
    """Constraints applied to the values of one property."""

    datatypes: tuple[str, ...] = ()
    min_count: int | None = None
    max_count: int | None = None


@dataclass(frozen=True)
class ValidationFailure:
    property: str
    rule: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"property": self.property, "rule": self.rule, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    failures: tuple[ValidationFailure, ...] = field(default_factory=tuple)

    @property
    def passed(self) -> bool:
        return not self.failures


def _type_matches(value: Any, datatypes: Iterable[str]) -> bool:
    for name in datatypes:
        accepted = _TYPE_NAMES.get(name.lower())
        if not accepted:
            continue
        # bool is an int subclass; only "boolean" accepts it.
        if isinstance(value, bool) and bool not in accepted:
            continue
        if isinstance(value, accepted):
            return True
    return False


def _check_datatype(name: str, values: list[Any], rule: PropertyRule) -> ValidationFailure | None:
    for value in values:
        if not _type_matches(value, rule.datatypes):
            return ValidationFailure(
                property=name,
                rule="datatype",
                message=f"Value {value!r} is not one of {', '.join(rule.datatypes)}",
            )
    return None


def _check_cardinality(name: str, values: list[Any], rule: PropertyRule) -> ValidationFailure | None:
    count = len(values)
    if rule.min_count is not None and count < rule.min_count:
        return ValidationFailure(
            property=name,
            rule="cardinality",
            message=f"Expected at least {rule.min_count} values, got {count}",
        )
    if rule.max_count is not None and count > rule.max_count:
        return ValidationFailure(
            property=name,
            rule="cardinality",
            message=f"Expected at most {rule.max_count} values, got {count}",
        )
    return None


def validate_properties(
    properties: Mapping[str, Any],
    rules: Mapping[str, PropertyRule],
) -> ValidationResult:
    """Check ``properties`` against ``rules`` and report every failure.

    Property values are treated as lists; a scalar counts as a single value.
    Properties without a rule always pass.
    """

    failures: list[ValidationFailure] = []
    for name, raw_values in properties.items():
        rule = rules.get(name)
        if rule is None:
            continue
        values = list(raw_values) if isinstance(raw_values, (list, tuple)) else [raw_values]
        if rule.datatypes:
            failure = _check_datatype(name, values, rule)
            if failure:
                failures.append(failure)
        if rule.min_count is not None or rule.max_count is not None:
            failure = _check_cardinality(name, values, rule)
            if failure:
                failures.append(failure)
    return ValidationResult(failures=tuple(failures))


def _parse_rule(name: str, data: Any) -> PropertyRule:
    if not isinstance(data, Mapping):
        raise ValidationRuleError(f"Rules for '{name}' must be a mapping")

    datatypes = data.get("datatype") or ()
    if isinstance(datatypes, str):
        datatypes = (datatypes,)
    unknown = [t for t in datatypes if str(t).lower() not in _TYPE_NAMES]
    if unknown:
        raise ValidationRuleError(f"Unknown datatype(s) for '{name}': {', '.join(map(str, unknown))}")

    cardinality = data.get("cardinality") or {}
    if not isinstance(cardinality, Mapping):
        raise ValidationRuleError(f"Cardinality for '{name}' must be a mapping")
    try:
        min_count = int(cardinality["min"]) if "min" in cardinality else None
        max_count = int(cardinality["max"]) if "max" in cardinality else None
    except (TypeError, ValueError) as exc:
        raise ValidationRuleError(f"Invalid cardinality for '{name}'") from exc

    return PropertyRule(
        datatypes=tuple(str(t) for t in datatypes),
        min_count=min_count,
        max_count=max_count,
    )


def load_validation_rules(source: str | Path | Mapping[str, Any] | None) -> dict[str, PropertyRule]:
    """Load property rules from a mapping or a YAML/JSON file."""

    if not source:
        return {}
    if isinstance(source, Mapping):
        data: Any = source
    else:
        try:
            text = Path(source).read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationRuleError(f"Cannot read validation rules: {exc}") from exc
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ValidationRuleError("Invalid YAML validation rules") from exc

    if not isinstance(data, Mapping):
        raise ValidationRuleError("Validation rules must be a mapping")
    return {str(name): _parse_rule(str(name), rule) for name, rule in data.items()}
