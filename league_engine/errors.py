"""
League Engine Errors
====================

Every failure raised by the simulation core derives from ``LeagueError`` so
callers can catch the whole family at the service boundary.

- ValidationError         - a state violates an invariant, or the requested
                            transition is not allowed from the current phase
- SemanticIntegrityError  - one or more whole-state invariant violations
- InvalidRangeError       - PRNG asked for an integer in an empty range
- EmptyInputError         - PRNG asked to pick from an empty sequence
- ImportRejectedError     - a save document was refused at the boundary
- StorageError            - the sqlite save store failed
"""

from typing import Any, List, Optional


class LeagueError(Exception):
    """Base class for every league engine failure."""


class ValidationError(LeagueError):
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class SemanticIntegrityError(ValidationError):
    """Aggregate of invariant violations found by the state checker."""

    def __init__(self, violations: List[Any]):
        first = violations[0].message if violations else "unknown violation"
        extra = len(violations) - 1
        message = first if extra <= 0 else f"{first} (+{extra} more)"
        super().__init__(message, details=[v.to_dict() for v in violations])
        self.violations = list(violations)


class InvalidRangeError(LeagueError, ValueError):
    pass


class EmptyInputError(LeagueError, IndexError):
    pass


class ImportRejectedError(LeagueError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class StorageError(LeagueError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
