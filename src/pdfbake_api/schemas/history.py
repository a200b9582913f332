from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class HistoryEntry(BaseModel):
    """One committed edit. ``snapshot`` holds the restorable document bytes, if any."""

    model_config = ConfigDict(frozen=True)

    description: str
    snapshot: bytes | None = Field(default=None, repr=False)

    @property
    def restorable(self) -> bool:
        return self.snapshot is not None


class HistoryItem(BaseModel):
    description: str
    restorable: bool


class HistoryState(BaseModel):
    undo: list[HistoryItem]
    redo: list[HistoryItem]
    can_undo: bool
    can_redo: bool
    limit: int
