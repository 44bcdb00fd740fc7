"""Validation of submitted form payloads against a template's field schema.

Every :class:`~service_desk.catalog.models.TemplateField` is turned into a
rule object chosen by its :class:`~service_desk.catalog.models.FieldType`.
Rules coerce raw JSON values into their normalized form (numbers, ISO dates,
booleans, option lists) or reject them with a :class:`FieldError` code:

``required``
    a required field is absent, ``None``, blank or an empty list
``invalid_type``
    the value cannot be read as the declared type
``invalid_option``
    a select/checkbox value is not one of the declared options
``pattern_mismatch``
    the submitted text does not fully match ``validation_pattern``
``invalid_pattern``
    the template's own pattern does not compile
``unknown_field``
    the payload carries a key the template does not declare

Validation is pure: it never touches the database or the clock.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Mapping

from service_desk.catalog.models import FieldType, Template, TemplateField

from .errors import FieldError, SubmissionValidationError

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
_TRUE_VALUES = frozenset({"true", "1", "on", "yes", "si", "sí"})
_FALSE_VALUES = frozenset({"false", "0", "off", "no"})


class _Rejected(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


class FieldRule:
    """Coercion and checks shared by every field type."""

    def __init__(self, definition: TemplateField) -> None:
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.field_name

    @property
    def label(self) -> str:
        return self.definition.label or self.definition.field_name

    def is_empty(self, value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if isinstance(value, (list, tuple)):
            return not value
        return False

    def coerce(self, value: Any) -> Any:
        raise NotImplementedError

    def satisfies_required(self, normalized: Any) -> bool:
        return True

    def pattern_subjects(self, value: Any) -> list[str]:
        return [str(value).strip()]

    def check_pattern(self, value: Any) -> None:
        """Match the submitted text, not its coerced form, against the template pattern."""

        pattern = self.definition.validation_pattern
        if not pattern:
            return
        try:
            compiled = _compile(pattern)
        except re.error as exc:
            raise _Rejected("invalid_pattern", f"Validation pattern for {self.label} is invalid") from exc
        for subject in self.pattern_subjects(value):
            if compiled.fullmatch(subject) is None:
                message = self.definition.error_message or f"{self.label} does not match the expected format"
                raise _Rejected("pattern_mismatch", message)

    def _reject_type(self, expected: str) -> _Rejected:
        return _Rejected("invalid_type", f"{self.label} must be {expected}")


class TextRule(FieldRule):
    def coerce(self, value: Any) -> str:
        if not _is_scalar(value):
            raise self._reject_type("text")
        return value if isinstance(value, str) else str(value)


class EmailRule(FieldRule):
    def coerce(self, value: Any) -> str:
        if not isinstance(value, str) or _EMAIL_RE.fullmatch(value.strip()) is None:
            raise self._reject_type("a valid email address")
        return value.strip()


class NumberRule(FieldRule):
    def coerce(self, value: Any) -> int | float:
        if isinstance(value, bool):
            raise self._reject_type("a number")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError as exc:
                raise self._reject_type("a number") from exc
        elif isinstance(value, float):
            number = value
        else:
            raise self._reject_type("a number")
        if not math.isfinite(number):
            raise self._reject_type("a finite number")
        return int(number) if number.is_integer() else number


class DateRule(FieldRule):
    def coerce(self, value: Any) -> str:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if not isinstance(value, str):
            raise self._reject_type("a date (YYYY-MM-DD)")
        text = value.strip()
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date().isoformat()
        except ValueError as exc:
            raise self._reject_type("a date (YYYY-MM-DD)") from exc


class SelectRule(FieldRule):
    def coerce(self, value: Any) -> str:
        if not _is_scalar(value) or str(value) not in self.definition.options:
            raise _Rejected("invalid_option", f"{self.label} must be one of: {', '.join(self.definition.options)}")
        return str(value)


class CheckboxRule(FieldRule):
    """Multiple choice when options are declared, a boolean flag otherwise."""

    def coerce(self, value: Any) -> list[str] | bool:
        if self.definition.options:
            return self._coerce_choices(value)
        return self._coerce_flag(value)

    def satisfies_required(self, normalized: Any) -> bool:
        return normalized is not False

    def pattern_subjects(self, value: Any) -> list[str]:
        if not self.definition.options:
            return []
        chosen = value if isinstance(value, (list, tuple)) else [value]
        return [str(item).strip() for item in chosen]

    def _coerce_choices(self, value: Any) -> list[str]:
        chosen = [value] if _is_scalar(value) else value
        if not isinstance(chosen, (list, tuple)) or not all(_is_scalar(item) for item in chosen):
            raise _Rejected("invalid_option", f"{self.label} must be a list of options")
        selected = {str(item) for item in chosen}
        unknown = selected.difference(self.definition.options)
        if unknown:
            raise _Rejected(
                "invalid_option",
                f"{self.label} has invalid option(s): {', '.join(sorted(unknown))}",
            )
        return [option for option in self.definition.options if option in selected]

    def _coerce_flag(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
        raise self._reject_type("true or false")


class FileRule(FieldRule):
    def coerce(self, value: Any) -> str:
        if not isinstance(value, str):
            raise self._reject_type("a file reference")
        return value.strip()


_RULES: dict[FieldType, type[FieldRule]] = {
    FieldType.TEXT: TextRule,
    FieldType.TEXTAREA: TextRule,
    FieldType.EMAIL: EmailRule,
    FieldType.NUMBER: NumberRule,
    FieldType.DATE: DateRule,
    FieldType.SELECT: SelectRule,
    FieldType.CHECKBOX: CheckboxRule,
    FieldType.FILE: FileRule,
}


def build_rule(definition: TemplateField) -> FieldRule:
    return _RULES[FieldType(definition.type)](definition)


def validate_submission(template: Template, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return the normalized payload or raise :class:`SubmissionValidationError`."""

    if not isinstance(payload, Mapping):
        raise SubmissionValidationError(
            [FieldError("form_payload", "invalid_type", "Form payload must be an object")]
        )

    rules = [build_rule(definition) for definition in template.ordered_fields()]
    declared: set[str] = set()
    for rule in rules:
        if rule.name in declared:
            raise ValueError(f"Template {template.id} declares field '{rule.name}' more than once")
        declared.add(rule.name)

    errors: list[FieldError] = []
    normalized: dict[str, Any] = {}
    for rule in rules:
        value = payload.get(rule.name)
        if rule.is_empty(value):
            if rule.definition.required:
                errors.append(FieldError(rule.name, "required", f"{rule.label} is required"))
            elif rule.name in payload:
                normalized[rule.name] = None
            continue
        try:
            coerced = rule.coerce(value)
            if rule.definition.required and not rule.satisfies_required(coerced):
                raise _Rejected("required", f"{rule.label} is required")
            rule.check_pattern(value)
        except _Rejected as rejection:
            errors.append(FieldError(rule.name, rejection.code, rejection.message))
            continue
        normalized[rule.name] = coerced

    for key in sorted(str(key) for key in payload if key not in declared):
        errors.append(FieldError(key, "unknown_field", f"'{key}' is not in schema"))

    if errors:
        raise SubmissionValidationError(errors)
    return normalized
