"""
API tests for projects, project settings and the file browser.
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))


class TestProjects:
    """Test project creation and listing."""

    def test_create_writes_claude_md(self, client, console_config):
        response = client.post("/api/projects", json={"name": "web-app", "description": "Storefront"})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["project"]["name"] == "web-app"
        claude_md = (console_config.projects_dir / "web-app" / "CLAUDE.md").read_text()
        assert claude_md.startswith("# web-app\n\nStorefront\n")

    def test_invalid_and_duplicate_names(self, client):
        bad = client.post("/api/projects", json={"name": "../escape"})
        assert bad.status_code == 400
        assert bad.json()["detail"].startswith("Invalid project name")

        client.post("/api/projects", json={"name": "api"})
        duplicate = client.post("/api/projects", json={"name": "api"})
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"] == "Project already exists"

    def test_list_skips_hidden_and_files(self, client, console_config):
        (console_config.projects_dir / "beta").mkdir()
        (console_config.projects_dir / "alpha").mkdir()
        (console_config.projects_dir / ".cache").mkdir()
        (console_config.projects_dir / "notes.txt").write_text("x")

        projects = client.get("/api/projects").json()

        assert [p["name"] for p in projects] == ["alpha", "beta"]
        assert projects[0]["id"] == "alpha"
        assert projects[0]["skip_permissions"] is False
        assert projects[0]["tags"] == []

    def test_settings_round_trip(self, client, console_config):
        (console_config.projects_dir / "svc").mkdir()

        updated = client.patch("/api/projects/svc/settings", json={"skip_permissions": True}).json()
        assert updated == {"success": True, "name": "svc", "skip_permissions": True}

        assert client.get("/api/projects/svc/settings").json()["skip_permissions"] is True
        assert [p["skip_permissions"] for p in client.get("/api/projects").json()] == [True]

    def test_settings_errors(self, client, console_config):
        (console_config.projects_dir / "svc").mkdir()

        assert client.patch("/api/projects/svc/settings", json={}).json()["detail"] == "No settings to update"
        assert client.get("/api/projects/missing/settings").status_code == 404
        assert client.get("/api/projects/.hidden/settings").status_code == 400

    def test_project_stats(self, client, console_config):
        app_dir = console_config.projects_dir / "app"
        app_dir.mkdir()
        (app_dir / "main.py").write_text("")

        stats = client.get("/api/admin/project-stats", params={"path": str(app_dir)}).json()

        assert stats["git"] is None
        assert stats["file_count"] == 1

    def test_project_stats_outside_projects_dir(self, client):
        response = client.get("/api/admin/project-stats", params={"path": "/etc"})
        assert response.status_code == 403


class TestFiles:
    """Test tree, preview and log tail endpoints."""

    def make_project(self, console_config):
        root = console_config.projects_dir / "app"
        (root / "src").mkdir(parents=True)
        (root / "src" / "main.py").write_text("print('hi')\n")
        return root

    def test_tree_by_project_name(self, client, console_config):
        root = self.make_project(console_config)

        result = client.get("/api/files/tree", params={"project": "app"}).json()

        assert result["root"] == str(root)
        assert result["tree"][0]["path"] == "app/src"
        assert result["tree"][0]["children"][0]["name"] == "main.py"

    def test_content(self, client, console_config):
        root = self.make_project(console_config)

        response = client.get("/api/files/content", params={"path": str(root / "src" / "main.py")})

        assert response.status_code == 200
        assert response.text == "print('hi')\n"

    def test_content_errors(self, client, console_config):
        root = self.make_project(console_config)

        assert client.get("/api/files/content", params={"path": str(root / "nope.py")}).status_code == 404
        assert client.get("/api/files/content", params={"path": "app/../../secret"}).status_code == 403

    def test_content_too_large(self, client, console_config):
        root = self.make_project(console_config)
        console_config.max_file_size = 4

        response = client.get("/api/files/content", params={"path": str(root / "src" / "main.py")})

        assert response.status_code == 413
        assert response.json()["detail"] == "File too large (max 5MB)"
