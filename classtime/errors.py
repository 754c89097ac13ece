from typing import Any, Dict, Optional


class TimetableError(Exception):
    """Base class for errors raised by the timetable engine."""

    pass


class InvalidInputError(TimetableError, ValueError):
    """Raised when the request is malformed (unknown references, slots outside the grid, duplicates)."""

    pass


class InfeasibleInputError(TimetableError):
    """Raised before search when the pre-check proves that no complete assignment can exist."""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        shortfall: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.entity_id = entity_id
        self.shortfall = shortfall
        self.details = details or {}


class PinConflictError(InfeasibleInputError):
    """Raised when two pinned entries occupy the same teacher, class or exclusive room in one slot."""

    pass


class IndexCorruptionError(TimetableError, RuntimeError):
    """Raised when placement bookkeeping disagrees with itself. Always a defect, never retried."""

    pass


# Exit status for each error when surfaced through the command line
EXIT_CODES = {
    InvalidInputError: 2,
    PinConflictError: 3,
    InfeasibleInputError: 3,
    IndexCorruptionError: 70,
}


def exit_code_for(exc: BaseException) -> int:
    for cls in type(exc).__mro__:
        if cls in EXIT_CODES:
            return EXIT_CODES[cls]
    return 1
