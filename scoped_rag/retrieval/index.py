"""
In-memory document index.

Single writer, many readers. Every write builds a new dict and publishes it
as the current snapshot under a lock; readers grab the current snapshot
reference without locking and iterate it. A reader therefore sees either the
whole old entry or the whole new one, and a concurrent write during an
enumerate() call can neither duplicate nor drop entries from that call.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence

from scoped_rag.pipelines.models import Document, IndexEntry

logger = logging.getLogger(__name__)


class DocumentIndex:
    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._entries: dict[str, IndexEntry] = {}
        self._loaded = False

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def put(self, document: Document, embedding: Sequence[float]) -> IndexEntry:
        """Insert or atomically replace the entry for document.identifier."""
        vector = tuple(float(v) for v in embedding)
        entry = IndexEntry(document=document.isolated(), embedding=vector)
        with self._write_lock:
            entries = dict(self._entries)
            replaced = document.identifier in entries
            entries[document.identifier] = entry
            self._entries = entries
        logger.debug(
            "[INDEX] %s %s (%d attrs)",
            "replaced" if replaced else "added",
            document.identifier,
            len(entry.document.attributes),
        )
        return entry

    def remove(self, identifier: str) -> bool:
        with self._write_lock:
            if identifier not in self._entries:
                return False
            entries = dict(self._entries)
            del entries[identifier]
            self._entries = entries
        logger.debug("[INDEX] removed %s", identifier)
        return True

    def replace_all(self, entries: Iterable[IndexEntry]) -> None:
        """Discard the current contents and publish entries as the new index in one step."""
        rebuilt = {
            entry.document.identifier: IndexEntry(
                document=entry.document.isolated(), embedding=entry.embedding
            )
            for entry in entries
        }
        with self._write_lock:
            self._entries = rebuilt
            self._loaded = True
        logger.info("[INDEX] rebuilt with %d entries", len(rebuilt))

    def mark_loaded(self) -> None:
        with self._write_lock:
            self._loaded = True

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    def enumerate(self) -> tuple[IndexEntry, ...]:
        """Snapshot of all entries in insertion order."""
        return tuple(self._entries.values())

    def get(self, identifier: str) -> IndexEntry | None:
        return self._entries.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)
