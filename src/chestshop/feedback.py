from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Outcome(str, Enum):
    """How a reply should be presented to the participant."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Feedback:
    """One user-facing message with its presentation outcome."""

    outcome: Outcome
    text: str

    @classmethod
    def success(cls, text: str) -> "Feedback":
        return cls(Outcome.SUCCESS, text)

    @classmethod
    def error(cls, text: str) -> "Feedback":
        return cls(Outcome.ERROR, text)

    @classmethod
    def warning(cls, text: str) -> "Feedback":
        return cls(Outcome.WARNING, text)

    @classmethod
    def info(cls, text: str) -> "Feedback":
        return cls(Outcome.INFO, text)
