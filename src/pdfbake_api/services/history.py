from __future__ import annotations

from collections import deque
import logging

from pdfbake_api.schemas.history import HistoryEntry, HistoryItem, HistoryState


DEFAULT_HISTORY_LIMIT = 20

logger = logging.getLogger("pdfbake_api")


def _describe(entries: deque[HistoryEntry]) -> list[HistoryItem]:
    # Most recent first.
    return [HistoryItem(description=entry.description, restorable=entry.restorable) for entry in reversed(entries)]


class HistoryManager:
    """Bounded linear undo/redo stacks of :class:`HistoryEntry`.

    ``commit`` pushes onto the undo stack (dropping the oldest entry past
    ``limit``) and clears redo. ``undo``/``redo`` move the top entry across
    and return it; deciding which bytes become current is left to the owner.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._undo: deque[HistoryEntry] = deque(maxlen=limit)
        self._redo: deque[HistoryEntry] = deque(maxlen=limit)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_entries(self) -> list[HistoryEntry]:
        return list(self._undo)

    @property
    def redo_entries(self) -> list[HistoryEntry]:
        return list(self._redo)

    def commit(self, entry: HistoryEntry) -> None:
        if len(self._undo) == self.limit:
            logger.debug("History cap reached, dropping entry=%s", self._undo[0].description)
        self._undo.append(entry)
        self._redo.clear()

    def undo(self, replacement: HistoryEntry | None = None) -> HistoryEntry | None:
        """Pop the newest undo entry onto redo.

        ``replacement`` lets the owner store a different entry on the redo
        stack, typically one whose snapshot is the document being left.
        """
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(replacement if replacement is not None else entry)
        return entry

    def redo(self, replacement: HistoryEntry | None = None) -> HistoryEntry | None:
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(replacement if replacement is not None else entry)
        return entry

    def peek_undo(self) -> HistoryEntry | None:
        return self._undo[-1] if self._undo else None

    def peek_redo(self) -> HistoryEntry | None:
        return self._redo[-1] if self._redo else None

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def state(self) -> HistoryState:
        return HistoryState(
            undo=_describe(self._undo),
            redo=_describe(self._redo),
            can_undo=self.can_undo,
            can_redo=self.can_redo,
            limit=self.limit,
        )
