from __future__ import annotations

from typing import Iterable, List, Optional


class PicklistError(Exception):
    """Base class for every error raised by the picklist engine."""


class FormatError(PicklistError):
    """CSV is structurally invalid (missing identity column, too few lines, no valid rows)."""


class EmptyDataError(FormatError):
    def __init__(self, message: str = "No valid data found in CSV file"):
        super().__init__(message)


class ValidationError(PicklistError):
    """A computed-column definition was rejected at authoring time."""

    def __init__(self, message: str, available_columns: Optional[Iterable[str]] = None):
        self.message = message
        self.available_columns: List[str] = list(available_columns or [])
        super().__init__(message)

    def describe(self) -> str:
        if not self.available_columns:
            return self.message
        return f"{self.message}. Available columns: {', '.join(self.available_columns)}"


class ComputeError(PicklistError):
    """A formula could not be computed for one row."""


class PersistenceError(PicklistError):
    """Serialization or storage failure."""


class UnknownTeamError(PicklistError, KeyError):
    def __init__(self, team_number: int):
        self.team_number = team_number
        super().__init__(f"Team {team_number} is not in the table")

    def __str__(self) -> str:
        return self.args[0]


class UnknownColumnError(PicklistError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Computed column {name!r} does not exist")

    def __str__(self) -> str:
        return self.args[0]


class InactiveRowError(PicklistError):
    def __init__(self, team_number: int):
        self.team_number = team_number
        super().__init__(f"Team {team_number} is inactive; reactivate it before editing its order")


class UnknownPicklistError(PicklistError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No saved picklist named {name!r}")

    def __str__(self) -> str:
        return self.args[0]
