"""
User directory backed by a JSON file.

File layout::

    {"users": [{"userId": "1", "userName": "admin", "displayName": "Admin"}]}

A bare list of user objects is accepted as well. The file may be edited
while the relay runs; ``reload_if_changed`` picks up the new contents.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji


@dataclass(frozen=True)
class DirectoryUser:
    """User known to the directory."""

    user_name: str
    display_name: str
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "displayName": self.display_name,
        }


@dataclass(frozen=True)
class DirectoryChange:
    """User names added, removed or edited by a reload."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.updated)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"added": self.added, "removed": self.removed, "updated": self.updated}


class UserDirectory:
    """
    Resolves user names to known users.

    Lookups are case-insensitive on the user name. With
    ``allow_unlisted=True`` unknown names resolve to a user whose display
    name equals the user name.
    """

    def __init__(
        self,
        users: Optional[Iterable[DirectoryUser]] = None,
        allow_unlisted: bool = False,
        reporter: Optional[SystemReporter] = None,
    ):
        self.allow_unlisted = allow_unlisted
        self.reporter = reporter
        self.path: Optional[Path] = None
        self.stats: Dict[str, Any] = {"reloads": 0, "last_change": None}

        self._users: Dict[str, DirectoryUser] = {}
        self._signature: Optional[Tuple[int, int]] = None

        for user in users or []:
            self.add(user)

    @classmethod
    def from_file(
        cls,
        path: Optional[Union[str, Path]],
        allow_unlisted: bool = False,
        reporter: Optional[SystemReporter] = None,
    ) -> "UserDirectory":
        """
        Load directory from JSON file.

        A missing or unreadable file yields an empty directory.
        """
        directory = cls(allow_unlisted=allow_unlisted, reporter=reporter)
        if path is not None:
            directory.load(path)
        return directory

    def load(self, path: Union[str, Path]) -> int:
        """
        Replace directory contents with users from a JSON file.

        The path is remembered for ``reload_if_changed``. A file that cannot
        be read or parsed leaves the current users in place.

        Returns:
            Number of users loaded
        """
        self.path = Path(path)

        try:
            signature = _file_signature(self.path)
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            self._signature = None
            if self.reporter:
                self.reporter.warning(
                    f"{Emoji.ERROR.NOT_FOUND} User directory not found: {self.path}",
                    context="UserDirectory",
                )
            return 0
        except (OSError, ValueError) as e:
            if self.reporter:
                self.reporter.error(
                    f"{Emoji.DATABASE.CORRUPT} Cannot read user directory "
                    f"{self.path}: {e}",
                    context="UserDirectory",
                )
            return 0

        self._signature = signature
        entries = document.get("users", []) if isinstance(document, dict) else document

        self._users.clear()
        for entry in entries if isinstance(entries, list) else []:
            if not isinstance(entry, dict) or not entry.get("userName"):
                continue
            user_name = str(entry["userName"])
            user_id = entry.get("userId")
            self.add(
                DirectoryUser(
                    user_name=user_name,
                    display_name=str(entry.get("displayName") or user_name),
                    user_id=str(user_id) if user_id is not None else None,
                )
            )

        if self.reporter:
            self.reporter.info(
                f"{Emoji.DATABASE.LOAD} User directory loaded: {len(self._users)} users",
                context="UserDirectory",
                verbose_level=2,
            )
        return len(self._users)

    def reload_if_changed(self) -> Optional[DirectoryChange]:
        """
        Reload the backing file if it was modified since the last load.

        Returns:
            The user-level change, or None when the file is unchanged, gone,
            unreadable or rewritten with the same users
        """
        if self.path is None:
            return None

        try:
            signature = _file_signature(self.path)
        except OSError:
            return None

        if signature == self._signature:
            return None

        before = dict(self._users)
        self.load(self.path)
        change = _diff(before, self._users)

        if change.is_empty():
            return None

        self.stats["reloads"] += 1
        self.stats["last_change"] = datetime.utcnow().isoformat() + "Z"

        if self.reporter:
            self.reporter.info(
                f"{Emoji.SYSTEM.RELOAD} User directory changed: "
                f"+{len(change.added)} -{len(change.removed)} ~{len(change.updated)} "
                f"(total={len(self._users)})",
                context="UserDirectory",
            )
        return change

    def add(self, user: DirectoryUser) -> None:
        self._users[user.user_name.lower()] = user

    def users(self) -> List[DirectoryUser]:
        return list(self._users.values())

    def contains(self, user_name: str) -> bool:
        """True if user_name is listed (unlisted fallbacks do not count)."""
        return user_name.lower() in self._users

    def get_user_by_username(self, user_name: str) -> Optional[DirectoryUser]:
        """Resolve user name; None if unknown and unlisted users are refused."""
        user = self._users.get(user_name.lower())
        if user is None and self.allow_unlisted:
            return DirectoryUser(user_name=user_name, display_name=user_name)
        return user

    def __len__(self) -> int:
        return len(self._users)


def _file_signature(path: Path) -> Tuple[int, int]:
    stat = os.stat(path)
    return stat.st_mtime_ns, stat.st_size


def _diff(
    before: Dict[str, DirectoryUser], after: Dict[str, DirectoryUser]
) -> DirectoryChange:
    return DirectoryChange(
        added=sorted(after[key].user_name for key in after.keys() - before.keys()),
        removed=sorted(before[key].user_name for key in before.keys() - after.keys()),
        updated=sorted(
            after[key].user_name
            for key in after.keys() & before.keys()
            if after[key] != before[key]
        ),
    )
