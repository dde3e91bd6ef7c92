"""
Tests for the backups API: tarball create / list / restore / delete.
"""
import shutil
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

import pytest

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar not installed")


@pytest.fixture
def project(console_config):
    path = console_config.projects_dir / "demo"
    (path / "src").mkdir(parents=True)
    (path / "src" / "main.py").write_text("print('hi')\n")
    (path / "node_modules" / "dep").mkdir(parents=True)
    (path / "node_modules" / "dep" / "index.js").write_text("module.exports = 1\n")
    return path


class TestValidation:

    def test_invalid_strategy(self, client, project):
        response = client.post("/api/backups/demo", json={"strategy": "snapshot"})
        assert response.status_code == 400

    def test_git_backup_needs_repository(self, client, project):
        response = client.post("/api/backups/demo", json={"strategy": "git"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Project is not a git repository"

    def test_unknown_project(self, client):
        assert client.post("/api/backups/ghost", json={}).status_code == 404

    def test_empty_listing(self, client):
        assert client.get("/api/backups/demo").json() == {"backups": []}

    def test_bad_backup_id(self, client, project):
        response = client.delete("/api/backups/demo/not-a-backup.txt")
        assert response.status_code == 400

    def test_missing_backup(self, client, project):
        response = client.post("/api/backups/demo/demo_2026-01-01T00-00-00_full.tar.gz/restore")
        assert response.status_code == 404


@requires_tar
class TestTarballLifecycle:

    def test_create_restore_delete(self, client, project, console_config):
        created = client.post("/api/backups/demo", json={"strategy": "full", "name": "nightly run"})
        assert created.status_code == 201
        backup = created.json()["backup"]
        assert backup["name"] == "nightly_run"
        assert backup["id"].endswith("_full.tar.gz")
        assert (console_config.backups_dir / "demo" / backup["id"]).is_file()

        listed = client.get("/api/backups/demo").json()["backups"]
        assert [b["id"] for b in listed] == [backup["id"]]

        (project / "src" / "main.py").unlink()
        restored = client.post(f"/api/backups/demo/{backup['id']}/restore")
        assert restored.json()["success"] is True
        assert (project / "src" / "main.py").read_text() == "print('hi')\n"

        assert client.delete(f"/api/backups/demo/{backup['id']}").json()["success"] is True
        assert client.get("/api/backups/demo").json() == {"backups": []}

    def test_archive_skips_dependencies(self, client, project):
        backup = client.post("/api/backups/demo", json={}).json()["backup"]
        shutil.rmtree(project)

        client.post(f"/api/backups/demo/{backup['id']}/restore")
        assert (project / "src" / "main.py").is_file()
        assert not (project / "node_modules").exists()
