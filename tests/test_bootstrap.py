# tests/test_bootstrap.py
"""Tests for wiring the app from settings."""

from pathlib import Path

import pytest


class TestCreateApp:
    def test_memory_backends(self) -> None:
        from casket.bootstrap import create_app
        from casket.core.config import CasketSettings
        from casket.core.content_store import MemoryContentStore

        settings = CasketSettings(
            database={"url": "sqlite://"},
            content_store={"backend": "memory"},
            security={"fingerprint_key": "k"},
        )
        app = create_app(settings, configure_logs=False)
        try:
            assert isinstance(app.content_store, MemoryContentStore)
            assert app.cas.resolve(
                app.access.authenticate(
                    f"Bearer {app.credentials.create_user_token('u1', 'fp', 60).token_id}"
                ),
                "@me",
                [],
            ) == []
        finally:
            app.close()

    def test_filesystem_backend(self, tmp_path: Path) -> None:
        from casket.bootstrap import create_app
        from casket.core.config import CasketSettings
        from casket.core.content_store import FilesystemContentStore

        settings = CasketSettings(
            database={"url": f"sqlite:///{tmp_path / 'casket.db'}"},
            content_store={"backend": "filesystem", "base_path": tmp_path / "blobs"},
            security={"fingerprint_key": "k"},
        )
        app = create_app(settings, configure_logs=False)
        try:
            assert isinstance(app.content_store, FilesystemContentStore)
            assert (tmp_path / "blobs").is_dir()
            assert (tmp_path / "casket.db").exists()
        finally:
            app.close()

    def test_missing_fingerprint_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from casket.bootstrap import create_app
        from casket.core.config import CasketSettings

        monkeypatch.delenv("CASKET_FINGERPRINT_KEY", raising=False)
        with pytest.raises(ValueError, match="CASKET_FINGERPRINT_KEY"):
            create_app(CasketSettings(), configure_logs=False)

    def test_fingerprint_key_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from casket.bootstrap import create_app
        from casket.core.config import CasketSettings

        monkeypatch.setenv("CASKET_FINGERPRINT_KEY", "from-env")
        app = create_app(
            CasketSettings(database={"url": "sqlite://"}, content_store={"backend": "memory"}),
            configure_logs=False,
        )
        app.close()


class TestCreateAppFromFile:
    def test_yaml_with_env_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from casket.bootstrap import create_app_from_file

        config = tmp_path / "settings.yaml"
        config.write_text(
            "database:\n"
            "  url: sqlite:///:memory:\n"
            "content_store:\n"
            "  backend: memory\n"
            "nodes:\n"
            "  chunk_threshold: 128\n"
            "security:\n"
            "  fingerprint_key: from-file\n"
            "logging:\n"
            "  level: WARNING\n"
        )
        monkeypatch.setenv("CASKET_NODES__CHUNK_THRESHOLD", "256")

        app = create_app_from_file(config)
        try:
            assert app.settings.nodes.chunk_threshold == 256
            assert app.settings.content_store.backend == "memory"
        finally:
            app.close()

    def test_missing_file(self, tmp_path: Path) -> None:
        from casket.bootstrap import create_app_from_file

        with pytest.raises(FileNotFoundError):
            create_app_from_file(tmp_path / "nope.yaml")
