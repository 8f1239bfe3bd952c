"""
Snapshot persistence for the session registry.

Writes one JSON document::

    {
        "sessions": [{"userId": ..., "userName": ..., ...}],
        "timestamp": 1700000000000,
        "saved_at": "2024-01-01T00:00:00.000Z"
    }

Snapshots are best effort: failures are logged, never raised.
"""

import asyncio
import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError
from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.domain.entities import Session
from relay.domain.events import utc_timestamp


class StateStore:
    """
    Persists registry snapshots to a JSON file.

    ``request_snapshot`` is the hot-path entry point: it captures the
    document immediately and hands it to a single background writer.
    While a write is in flight only the newest pending document is kept,
    so bursts of requests collapse into at most one extra write.
    """

    def __init__(
        self,
        path: Union[str, Path],
        reporter: Optional[SystemReporter] = None,
    ):
        self.path = Path(path)
        self.reporter = reporter

        self._pending: Optional[Dict[str, Any]] = None
        self._writer_task: Optional[asyncio.Task] = None

        self.last_saved_at: Optional[str] = None
        self.stats = {
            "snapshots_written": 0,
            "snapshots_failed": 0,
            "snapshots_coalesced": 0,
        }

    @staticmethod
    def build_document(sessions: Iterable[Session]) -> Dict[str, Any]:
        return {
            "sessions": [s.to_document() for s in sessions],
            "timestamp": int(time.time() * 1000),
            "saved_at": utc_timestamp(),
        }

    # ================================================================
    # Writing
    # ================================================================

    def snapshot(self, sessions: Iterable[Session]) -> bool:
        """
        Write a snapshot synchronously.

        Returns:
            True if written, False on failure
        """
        return self._write_document(self.build_document(sessions))

    def request_snapshot(self, sessions: Iterable[Session]) -> None:
        """
        Schedule a snapshot without waiting for the write.

        Falls back to a synchronous write when no event loop is running.
        """
        document = self.build_document(sessions)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._write_document(document)
            return

        if self._pending is not None:
            self.stats["snapshots_coalesced"] += 1
        self._pending = document

        if self._writer_task is None or self._writer_task.done():
            self._writer_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            document, self._pending = self._pending, None
            await asyncio.to_thread(self._write_document, document)

    async def flush(self) -> None:
        """Wait until every requested snapshot has been written."""
        if self._writer_task is not None and not self._writer_task.done():
            await self._writer_task

        if self._pending is not None:
            document, self._pending = self._pending, None
            self._write_document(document)

    def _write_document(self, document: Dict[str, Any]) -> bool:
        """Atomically replace the state file (temp file + rename)."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)

        except (OSError, TypeError, ValueError) as e:
            self.stats["snapshots_failed"] += 1
            if self.reporter:
                self.reporter.error(
                    f"{Emoji.ERROR.ERROR} Failed to save state to {self.path}: {e}",
                    context="StateStore",
                )
            return False

        self.stats["snapshots_written"] += 1
        self.last_saved_at = document.get("saved_at")

        if self.reporter:
            self.reporter.debug(
                f"{Emoji.DATABASE.SAVE} State saved "
                f"({len(document.get('sessions', []))} sessions)",
                context="StateStore",
            )
        return True

    # ================================================================
    # Reading
    # ================================================================

    def restore(self) -> List[Session]:
        """
        Load sessions from the last snapshot.

        Missing or malformed files yield an empty list. Entries without
        userId/userName are skipped. The legacy ``connectedUsers`` layout
        is accepted as well.

        Returns:
            Restored sessions
        """
        if not self.path.exists():
            if self.reporter:
                self.reporter.info(
                    f"No previous state at {self.path}",
                    context="StateStore",
                    verbose_level=2,
                )
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            if self.reporter:
                self.reporter.warning(
                    f"{Emoji.DATABASE.CORRUPT} Ignoring unreadable state file "
                    f"{self.path}: {e}",
                    context="StateStore",
                )
            return []

        if not isinstance(document, dict):
            if self.reporter:
                self.reporter.warning(
                    f"{Emoji.DATABASE.CORRUPT} Ignoring malformed state file {self.path}",
                    context="StateStore",
                )
            return []

        entries = document.get("sessions")
        if entries is None:
            entries = [
                self._from_legacy_entry(e) for e in document.get("connectedUsers") or []
            ]

        sessions: List[Session] = []
        skipped = 0
        for entry in entries if isinstance(entries, list) else []:
            if not isinstance(entry, dict):
                skipped += 1
                continue
            try:
                sessions.append(Session.model_validate(entry))
            except ValidationError:
                skipped += 1

        if self.reporter:
            self.reporter.info(
                f"{Emoji.DATABASE.LOAD} Previous state loaded: {len(sessions)} sessions"
                + (f" ({skipped} skipped)" if skipped else ""),
                context="StateStore",
            )
        return sessions

    @staticmethod
    def _from_legacy_entry(entry: Any) -> Any:
        if not isinstance(entry, dict):
            return entry
        converted = dict(entry)
        converted.setdefault(
            "connectionId", entry.get("socketId") or entry.get("userId") or ""
        )
        if "ip" in entry:
            converted.setdefault("clientIp", entry["ip"])
        converted.setdefault("displayName", entry.get("userName"))
        return converted
