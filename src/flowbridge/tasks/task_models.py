# src/flowbridge/tasks/task_models.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class TaskStatus(StrEnum):
    """
    Kanban column a task sits in.

    Values are the server's wire spellings. Every status is reachable from every
    other one; the board is a labeling system, not a workflow gate.
    """

    NOT_STARTED = "notstarted"
    IN_PROGRESS = "inprogress"
    IN_REVIEW = "inreview"
    BLOCKED = "blocked"
    COMPLETE = "complete"

    @classmethod
    def parse(cls, raw: str | None) -> TaskStatus:
        """
        Accept wire values and their snake_case/dashed spellings
        ("in_progress", "in-progress"). Raises ValueError for anything else.
        """
        key = (raw or "").strip().lower().replace("_", "").replace("-", "").replace(" ", "")
        return cls(key)

    @classmethod
    def from_wire(cls, raw: str | None) -> TaskStatus:
        try:
            return cls.parse(raw)
        except ValueError:
            logger.warning("Unknown task status %r; treating as not started", raw)
            return cls.NOT_STARTED


class LabelColor(StrEnum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    GRAY = "gray"

    @classmethod
    def from_wire(cls, raw: str | None) -> LabelColor:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.GRAY


def parse_timestamp(raw: Any) -> datetime | None:
    """
    Parse an RFC 3339 timestamp as produced by the server.

    The server emits up to nanosecond precision; datetime keeps microseconds,
    so extra fractional digits are dropped before parsing.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    text = _FRACTION_RE.sub(r"\1", str(raw).strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable timestamp %r", raw)
        return None


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_due_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        logger.warning("Unparseable due date %r", raw)
        return None


@dataclass(slots=True, frozen=True)
class Label:
    name: str
    color: LabelColor = LabelColor.GRAY

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "color": self.color.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Label:
        return cls(name=str(data.get("name", "")), color=LabelColor.from_wire(data.get("color")))


@dataclass(slots=True, frozen=True)
class Step:
    text: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Step:
        return cls(text=str(data.get("text", "")), completed=bool(data.get("completed", False)))


@dataclass(slots=True, frozen=True)
class Comment:
    text: str
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(text=str(data.get("text", "")), created_at=parse_timestamp(data.get("created_at")))


@dataclass(slots=True, frozen=True)
class Task:
    """
    A card on the board.

    Instances are immutable; the store swaps whole values (dataclasses.replace)
    so subscribers never observe a half-applied change.
    """

    id: int
    description: str
    details: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    due_date: date | None = None
    steps: tuple[Step, ...] = ()
    comments: tuple[Comment, ...] = ()
    labels: tuple[Label, ...] = ()
    time_spent: int = 0
    archived: bool = False
    archived_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def progress(self) -> tuple[int, int]:
        """(completed steps, total steps)"""
        done = sum(1 for s in self.steps if s.completed)
        return done, len(self.steps)

    @property
    def label_names(self) -> list[str]:
        return [lbl.name for lbl in self.labels]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        try:
            task_id = int(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Task payload without a valid id: {data!r}") from e

        archived = bool(data.get("archived", False))
        return cls(
            id=task_id,
            description=str(data.get("description") or ""),
            details=data.get("details") or None,
            status=TaskStatus.from_wire(data.get("status")),
            due_date=parse_due_date(data.get("due_date")),
            steps=tuple(Step.from_dict(s) for s in data.get("steps") or [] if isinstance(s, dict)),
            comments=tuple(
                Comment.from_dict(c) for c in data.get("comments") or [] if isinstance(c, dict)
            ),
            labels=tuple(Label.from_dict(lbl) for lbl in data.get("labels") or [] if isinstance(lbl, dict)),
            time_spent=max(0, int(data.get("time_spent") or 0)),
            archived=archived,
            archived_at=parse_timestamp(data.get("archived_at")) if archived else None,
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass(slots=True)
class TaskDraft:
    """Fields a client may send when creating a task; the server fills in the rest."""

    description: str
    details: str | None = None
    steps: list[str] = field(default_factory=list)
    due_date: date | None = None
    labels: list[Label] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "details": self.details or None,
            "steps": list(self.steps) or None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "labels": [lbl.to_dict() for lbl in self.labels] or None,
        }
