"""Unit tests for backups and database maintenance."""

import os
import shutil
import threading
from dataclasses import replace
from unittest.mock import patch

import pytest
from sqlalchemy import text

from common.config import get_settings
from services.maintenance import backup, cleanup


@pytest.fixture
def settings(tmp_path):
    return replace(get_settings(), backup_dir=str(tmp_path / "backups"), max_backups=3)


class TestBackups:
    """Test backup creation and rotation."""

    @pytest.mark.asyncio
    async def test_create_backup_copies_database(self, db, settings):
        path = await backup.create_backup(db, settings)

        assert os.path.exists(path)
        assert os.path.basename(path).startswith("aih-backup-")
        assert os.path.getsize(path) > 0

    @pytest.mark.asyncio
    async def test_copy_runs_off_the_event_loop(self, db, settings):
        copying_threads = []
        real_copy = shutil.copy2

        def recording_copy(src, dst):
            copying_threads.append(threading.get_ident())
            return real_copy(src, dst)

        with patch("services.maintenance.backup.shutil.copy2", side_effect=recording_copy):
            path = await backup.create_backup(db, settings)

        assert os.path.exists(path)
        assert copying_threads and copying_threads[0] != threading.get_ident()

    def test_rotate_keeps_newest(self, tmp_path):
        for day in range(1, 6):
            (tmp_path / f"aih-backup-2025-01-0{day}_00-00-00.db").write_bytes(b"x")
        (tmp_path / "unrelated.db").write_bytes(b"x")

        removed = backup.rotate_backups(str(tmp_path), keep=3)

        assert len(removed) == 2
        remaining = sorted(os.listdir(tmp_path))
        assert remaining == [
            "aih-backup-2025-01-03_00-00-00.db",
            "aih-backup-2025-01-04_00-00-00.db",
            "aih-backup-2025-01-05_00-00-00.db",
            "unrelated.db",
        ]


class TestCleanup:
    """Test log retention and optimization."""

    @pytest.mark.asyncio
    async def test_old_access_logs_purged(self, db, user, settings):
        with db.engine.begin() as conn:
            conn.execute(
                text("INSERT INTO logs_acesso (usuario_id, acao, data_hora) VALUES (:id, 'old', datetime('now', '-90 days'))"),
                {"id": user["id"]},
            )
            conn.execute(text("INSERT INTO logs_acesso (usuario_id, acao) VALUES (:id, 'recent')"), {"id": user["id"]})
            conn.execute(
                text(
                    "INSERT INTO logs_exclusao (tipo_exclusao, usuario_id, dados_excluidos, justificativa, data_exclusao) "
                    "VALUES ('movimentacao', :id, '{}', 'kept for the long term', datetime('now', '-400 days'))"
                ),
                {"id": user["id"]},
            )

        removed = await cleanup.cleanup_old_logs(db, settings)

        assert removed == {"logs_acesso": 1, "logs_exclusao": 0}
        remaining = await db.fetch_all("SELECT acao FROM logs_acesso")
        assert [row["acao"] for row in remaining] == ["recent"]

    @pytest.mark.asyncio
    async def test_run_maintenance(self, db, settings):
        removed = await cleanup.run_maintenance(db, settings)
        assert removed == {"logs_acesso": 0, "logs_exclusao": 0}
