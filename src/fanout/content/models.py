"""Boundary types for the content store and duplication primitive."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True, slots=True)
class ContentItem:
    """A content record owned by the external content store."""

    id: int
    item_type: str = "post"
    title: str = ""
    language: str | None = None
    source_item_id: int | None = None
    created_at: datetime | None = None

    @property
    def is_translation(self) -> bool:
        return self.source_item_id is not None


@dataclass(frozen=True, slots=True)
class CallerSignal:
    """Identity markers of the inbound request that created an item.

    Supplied by the request layer; the admission gate only consumes them.
    """

    user_agent: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    remote_addr: str | None = None

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class DuplicationStatus(str, Enum):
    """Outcome kinds of one duplication call."""

    CREATED = "created"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DuplicationResult:
    """Result of ``duplicate(item_id, language)``."""

    status: DuplicationStatus
    new_id: object = None
    message: str = ""

    @classmethod
    def created(cls, new_id: int) -> DuplicationResult:
        return cls(DuplicationStatus.CREATED, new_id=new_id)

    @classmethod
    def unavailable(cls, message: str = "duplication API unavailable") -> DuplicationResult:
        return cls(DuplicationStatus.UNAVAILABLE, message=message)

    @classmethod
    def failed(cls, message: str) -> DuplicationResult:
        return cls(DuplicationStatus.FAILED, message=message)


@dataclass(frozen=True, slots=True)
class DuplicatorCapability:
    """Result of probing whether the duplication primitive can be used."""

    available: bool
    reason: str = ""
