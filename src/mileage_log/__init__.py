from .core import (
    build_export_filename,
    format_date_for_display,
    format_month_human,
    month_range,
    total_miles,
)
from .errors import (
    CapacityExceeded,
    ConfirmationRequired,
    EntryNotFound,
    ExportError,
    InvalidMonthToken,
    LoadError,
    MutationError,
)
from .models import EntryForm, ExportArtifact, MonthRange, Session, TravelEntry, TravelEntryInput
from .services import EntryStore, StoreSnapshot
from .validation import ValidationError, ValidationResult, validate_entry

__all__ = [
    "CapacityExceeded",
    "ConfirmationRequired",
    "EntryForm",
    "EntryNotFound",
    "EntryStore",
    "ExportArtifact",
    "ExportError",
    "InvalidMonthToken",
    "LoadError",
    "MonthRange",
    "MutationError",
    "Session",
    "StoreSnapshot",
    "TravelEntry",
    "TravelEntryInput",
    "ValidationError",
    "ValidationResult",
    "build_export_filename",
    "format_date_for_display",
    "format_month_human",
    "month_range",
    "total_miles",
    "validate_entry",
]
