"""Exceptions raised inside the stores and converted to results at their boundary."""


class LedgerError(Exception):
    pass


class ValidationError(LedgerError):
    """Duplicate active name, protected default category, or malformed input."""


class RecordNotFound(LedgerError):
    pass


class BusyError(LedgerError):
    """Another coordinator command is still in flight."""
