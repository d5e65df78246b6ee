"""Explicit validation of transaction payloads, applied before persistence."""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from shared.models import (
    FieldError,
    RecurrenceFrequency,
    Transaction,
    TransactionFields,
)


_FIELD_ALIASES: dict[str, str] = {name: to_camel(name) for name in TransactionFields.model_fields}


@dataclass(slots=True)
class ValidationOutcome:
    value: TransactionFields | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors


def field_errors_from(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic error into `{field, message}` entries."""

    errors: list[FieldError] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        errors.append(FieldError(field=location or "body", message=str(error.get("msg", "Invalid value"))))
    return errors


def _normalize_keys(payload: Mapping[str, object]) -> dict[str, object]:
    return {_FIELD_ALIASES.get(str(key), str(key)): value for key, value in payload.items()}


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_due_date(start: date, frequency: RecurrenceFrequency) -> date:
    """Return the first occurrence after `start`; month ends are clamped."""

    if frequency == RecurrenceFrequency.DAILY:
        return start + timedelta(days=1)
    if frequency == RecurrenceFrequency.WEEKLY:
        return start + timedelta(days=7)
    if frequency == RecurrenceFrequency.MONTHLY:
        return _add_months(start, 1)
    return _add_months(start, 12)


def merge_update(current: Transaction, changes: Mapping[str, object]) -> dict[str, object]:
    """Overlay the supplied fields on the stored editable fields."""

    stored = current.model_dump(include=set(TransactionFields.model_fields), by_alias=True)
    return {**stored, **_normalize_keys(changes)}


def validate_transaction_fields(payload: object, *, fill_next_due_date: bool = True) -> ValidationOutcome:
    """Validate a full set of transaction fields.

    Recurring transactions need a frequency and a next due date; when only the
    frequency is given and `fill_next_due_date` is set, the due date is derived
    from the transaction date.
    """

    if not isinstance(payload, Mapping):
        return ValidationOutcome(errors=[FieldError(field="body", message="Expected a JSON object")])

    try:
        fields = TransactionFields.model_validate(_normalize_keys(payload))
    except ValidationError as exc:
        return ValidationOutcome(errors=field_errors_from(exc))

    if not fields.is_recurring:
        return ValidationOutcome(value=fields)

    details = fields.recurring_details
    if details is None or details.frequency is None:
        return ValidationOutcome(
            errors=[
                FieldError(
                    field="recurringDetails.frequency",
                    message="Frequency is required for recurring transactions",
                )
            ]
        )

    if details.next_due_date is None:
        if not fill_next_due_date:
            return ValidationOutcome(
                errors=[
                    FieldError(
                        field="recurringDetails.nextDueDate",
                        message="Next due date is required for recurring transactions",
                    )
                ]
            )
        details = details.model_copy(
            update={"next_due_date": next_due_date(fields.date, details.frequency)}
        )
        fields = fields.model_copy(update={"recurring_details": details})

    return ValidationOutcome(value=fields)
