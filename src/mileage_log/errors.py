from __future__ import annotations


class MileageLogError(Exception):
    """Base class for errors surfaced to the user."""


class InvalidMonthToken(MileageLogError, ValueError):
    def __init__(self, token: object):
        super().__init__(f"Invalid month value: {token!r}")
        self.token = token


class LoadError(MileageLogError):
    pass


class MutationError(MileageLogError):
    pass


class ConfirmationRequired(MileageLogError):
    pass


class ExportError(MileageLogError):
    pass


class CapacityExceeded(ExportError):
    def __init__(self, capacity: int, count: int, first_row: int, last_row: int):
        super().__init__(
            f"The Excel template currently supports {capacity} rows (A{first_row}:D{last_row}); "
            f"{count} entries cannot be exported. Please expand the template if you need "
            "to export additional entries."
        )
        self.capacity = capacity
        self.count = count


class AuthenticationError(MileageLogError):
    pass


class ConfigurationError(MileageLogError):
    pass


class EntryNotFound(MutationError):
    pass
