from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Literal

from .core import parse_iso_date
from .models import EntryForm, TravelEntryInput

ErrorCode = Literal["InvalidDate", "MissingTrip", "InvalidMiles", "MissingPurpose"]

MILES_PATTERN = re.compile(r"[0-9]+(\.[0-9])?")


@dataclass(frozen=True)
class ValidationError:
    field: str
    code: ErrorCode
    message: str


@dataclass
class ValidationResult:
    payload: TravelEntryInput | None = None
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.payload is not None and not self.errors

    def errors_by_field(self) -> dict[str, str]:
        return {error.field: error.message for error in self.errors}


def validate_entry(form: EntryForm) -> ValidationResult:
    errors: list[ValidationError] = []

    entry_date = form.entry_date.strip()
    if parse_iso_date(entry_date) is None:
        errors.append(ValidationError("entry_date", "InvalidDate", "Please provide a valid date."))

    trip = form.trip.strip()
    if not trip:
        errors.append(ValidationError("trip", "MissingTrip", "Trip description is required."))

    miles_text = form.miles.strip()
    miles: float | None = None
    if not miles_text:
        errors.append(ValidationError("miles", "InvalidMiles", "Miles are required."))
    elif not MILES_PATTERN.fullmatch(miles_text):
        errors.append(
            ValidationError(
                "miles",
                "InvalidMiles",
                "Miles must be a non-negative number with at most one decimal.",
            )
        )
    else:
        miles = float(miles_text)

    purpose = form.purpose.strip()
    if not purpose:
        errors.append(ValidationError("purpose", "MissingPurpose", "Business purpose is required."))

    if errors or miles is None:
        return ValidationResult(errors=errors)
    return ValidationResult(
        payload=TravelEntryInput(entry_date=entry_date, trip=trip, miles=miles, purpose=purpose)
    )
