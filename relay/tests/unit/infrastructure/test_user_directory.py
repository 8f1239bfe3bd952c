"""
Unit tests for UserDirectory.

Usage:
    pytest relay/tests/unit/infrastructure/test_user_directory.py
"""

import json
import os

from relay.infrastructure.directory import DirectoryUser, UserDirectory


class TestUserDirectory:
    """Unit tests for UserDirectory."""

    def test_lookup(self, directory):
        """Test lookups by user name ignore case."""
        assert directory.get_user_by_username("Motorista").display_name == "Motorista"
        assert directory.get_user_by_username("admin").display_name == "Administrador"
        assert directory.get_user_by_username("ghost") is None
        assert len(directory) == 4

    def test_allow_unlisted(self):
        """Test unlisted users resolve to their own name."""
        directory = UserDirectory(allow_unlisted=True)

        user = directory.get_user_by_username("visitante")

        assert user == DirectoryUser(user_name="visitante", display_name="visitante")

    def test_from_file(self, tmp_path, reporter):
        """Test the {"users": [...]} layout."""
        path = tmp_path / "users.json"
        path.write_text(
            json.dumps(
                {
                    "users": [
                        {"userId": 1, "userName": "admin", "displayName": "Administrador"},
                        {"userName": "operador"},
                        {"displayName": "sem login"},
                    ]
                }
            ),
            encoding="utf-8",
        )

        directory = UserDirectory.from_file(path, reporter=reporter)

        assert len(directory) == 2
        assert directory.get_user_by_username("admin").user_id == "1"
        assert directory.get_user_by_username("operador").display_name == "operador"

    def test_bare_list_layout(self, tmp_path):
        """Test a bare list of users is accepted."""
        path = tmp_path / "users.json"
        path.write_text(json.dumps([{"userName": "nathan"}]), encoding="utf-8")

        assert len(UserDirectory.from_file(path)) == 1

    def test_missing_or_broken_file(self, tmp_path, reporter):
        """Test unreadable files yield an empty directory."""
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")

        assert len(UserDirectory.from_file(tmp_path / "nope.json", reporter=reporter)) == 0
        assert len(UserDirectory.from_file(broken, reporter=reporter)) == 0
        assert len(UserDirectory.from_file(None)) == 0

    def test_bundled_directory(self):
        """Test the shipped config/users.json loads."""
        from relay.config.settings import resolve_path

        directory = UserDirectory.from_file(resolve_path("config/users.json"))

        assert directory.get_user_by_username("admin") is not None


def write_users(path, users, mtime_ns: int) -> None:
    path.write_text(json.dumps({"users": users}), encoding="utf-8")
    os.utime(path, ns=(mtime_ns, mtime_ns))


class TestDirectoryReload:
    """Unit tests for picking up edits to the users file."""

    # ================================================================
    # Change detection
    # ================================================================

    def test_reload_reports_added_removed_updated(self, tmp_path, reporter):
        """Test an edited file is reloaded and the user diff returned."""
        path = tmp_path / "users.json"
        write_users(
            path,
            [
                {"userId": 1, "userName": "admin", "displayName": "Administrador"},
                {"userId": 2, "userName": "operador"},
            ],
            mtime_ns=1_000_000_000,
        )
        directory = UserDirectory.from_file(path, reporter=reporter)

        write_users(
            path,
            [
                {"userId": 1, "userName": "admin", "displayName": "Admin Geral"},
                {"userId": 4, "userName": "Joana"},
            ],
            mtime_ns=2_000_000_000,
        )
        change = directory.reload_if_changed()

        assert change.added == ["Joana"]
        assert change.removed == ["operador"]
        assert change.updated == ["admin"]
        assert directory.get_user_by_username("joana").user_id == "4"
        assert directory.get_user_by_username("operador") is None
        assert directory.stats["reloads"] == 1
        assert directory.stats["last_change"].endswith("Z")

    def test_unchanged_file_is_not_reread(self, tmp_path):
        """Test no change is reported while the file is untouched."""
        path = tmp_path / "users.json"
        write_users(path, [{"userName": "admin"}], mtime_ns=1_000_000_000)
        directory = UserDirectory.from_file(path)

        assert directory.reload_if_changed() is None

    def test_rewrite_with_same_users(self, tmp_path):
        """Test a touched file with identical users reports no change."""
        path = tmp_path / "users.json"
        write_users(path, [{"userName": "admin"}], mtime_ns=1_000_000_000)
        directory = UserDirectory.from_file(path)

        write_users(path, [{"userName": "admin"}], mtime_ns=2_000_000_000)

        assert directory.reload_if_changed() is None
        assert directory.stats["reloads"] == 0

    # ================================================================
    # Broken edits
    # ================================================================

    def test_half_written_file_keeps_users_and_retries(self, tmp_path, reporter):
        """Test an unparseable edit keeps the old users until it is fixed."""
        path = tmp_path / "users.json"
        write_users(path, [{"userName": "admin"}], mtime_ns=1_000_000_000)
        directory = UserDirectory.from_file(path, reporter=reporter)

        path.write_text('{"users": [{"userName": "adm', encoding="utf-8")
        os.utime(path, ns=(2_000_000_000, 2_000_000_000))

        assert directory.reload_if_changed() is None
        assert directory.get_user_by_username("admin") is not None

        write_users(
            path,
            [{"userName": "admin"}, {"userName": "motorista"}],
            mtime_ns=3_000_000_000,
        )

        assert directory.reload_if_changed().added == ["motorista"]

    def test_deleted_file_keeps_users(self, tmp_path):
        """Test removing the file leaves the directory as it was."""
        path = tmp_path / "users.json"
        write_users(path, [{"userName": "admin"}], mtime_ns=1_000_000_000)
        directory = UserDirectory.from_file(path)

        path.unlink()

        assert directory.reload_if_changed() is None
        assert len(directory) == 1

    def test_in_memory_directory_never_reloads(self, directory):
        """Test a directory built without a file has nothing to reload."""
        assert directory.reload_if_changed() is None
