"""
API tests for colour themes.
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from devconsole.theme_catalog import BUILT_IN_THEMES, COLOR_KEYS, find_invalid_color


class TestBuiltInThemes:
    """Test seeded themes."""

    def test_seeded_on_startup(self, client):
        names = {t["name"] for t in client.get("/api/themes").json()}
        assert {t["name"] for t in BUILT_IN_THEMES} <= names

    def test_active_defaults_to_dark(self, client):
        assert client.get("/api/themes/active").json()["name"] == "dark"

    def test_built_ins_are_read_only(self, client):
        update = client.put("/api/themes/dracula", json={"display_name": "Mine"})
        delete = client.delete("/api/themes/dracula")

        assert update.status_code == 403
        assert update.json()["detail"] == "Cannot modify built-in themes"
        assert delete.status_code == 403
        assert delete.json()["detail"] == "Cannot delete built-in themes"

    def test_unknown_theme(self, client):
        assert client.get("/api/themes/nope").status_code == 404

    def test_built_in_palettes_use_valid_colors(self):
        for theme in BUILT_IN_THEMES:
            assert find_invalid_color(theme["colors"]) is None, theme["name"]


class TestCustomThemes:
    """Test creating, editing and activating custom themes."""

    def test_create_normalizes_name_and_fills_palette(self, client):
        response = client.post("/api/themes", json={
            "name": "My Theme ",
            "display_name": "My Theme",
            "colors": {"bgPrimary": "#000000"},
        })

        assert response.status_code == 201
        theme = response.json()
        assert theme["name"] == "my-theme"
        assert theme["is_built_in"] is False
        assert theme["colors"]["bgPrimary"] == "#000000"
        assert set(COLOR_KEYS) <= set(theme["colors"])

    def test_create_validation(self, client):
        assert client.post("/api/themes", json={"display_name": "x", "colors": {"a": "b"}}).status_code == 400
        assert client.post("/api/themes", json={"name": "x", "colors": {"a": "b"}}).status_code == 400
        response = client.post("/api/themes", json={"name": "x", "display_name": "X"})
        assert response.json()["detail"] == "Colors are required"

    def test_invalid_colors_rejected(self, client):
        response = client.post("/api/themes", json={
            "name": "broken", "display_name": "Broken", "colors": {"bgPrimary": "url(javascript:alert(1))"},
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid color for bgPrimary: url(javascript:alert(1))"
        assert client.get("/api/themes/broken").status_code == 404

        client.post("/api/themes", json={"name": "mine", "display_name": "Mine", "colors": {"bgPrimary": "#111"}})
        response = client.put("/api/themes/mine", json={"colors": {"textPrimary": "#12345"}})
        assert response.status_code == 400
        assert client.get("/api/themes/mine").json()["colors"]["textPrimary"] != "#12345"

    def test_hex_and_rgba_colors_accepted(self, client):
        response = client.post("/api/themes", json={
            "name": "ok", "display_name": "Ok",
            "colors": {"bgPrimary": "#0d1117", "bgCard": "rgba(22, 27, 34, 0.8)", "textMuted": "#abcd"},
        })
        assert response.status_code == 201

    def test_duplicate_name_conflicts(self, client):
        body = {"name": "mine", "display_name": "Mine", "colors": {"bgPrimary": "#111"}}
        client.post("/api/themes", json=body)

        response = client.post("/api/themes", json=body)

        assert response.status_code == 409
        assert response.json()["detail"] == "Theme name already exists"

    def test_update_merges_colors(self, client):
        client.post("/api/themes", json={"name": "mine", "display_name": "Mine", "colors": {"bgPrimary": "#111"}})

        theme = client.put("/api/themes/mine", json={"colors": {"textPrimary": "#eee"}}).json()

        assert theme["colors"]["bgPrimary"] == "#111"
        assert theme["colors"]["textPrimary"] == "#eee"
        assert theme["display_name"] == "Mine"

    def test_activate_is_exclusive(self, client):
        client.post("/api/themes", json={"name": "mine", "display_name": "Mine", "colors": {"bgPrimary": "#111"}})

        client.put("/api/themes/mine/activate")

        themes = client.get("/api/themes").json()
        assert [t["name"] for t in themes if t["is_active"]] == ["mine"]
        assert client.get("/api/themes/active").json()["name"] == "mine"

    def test_duplicate_built_in(self, client):
        response = client.post("/api/themes/nord/duplicate", json={})

        assert response.status_code == 201
        copy = response.json()
        assert copy["name"] == "nord-custom"
        assert copy["display_name"] == "Nord (Custom)"
        assert copy["is_built_in"] is False

    def test_delete_custom(self, client):
        client.post("/api/themes", json={"name": "mine", "display_name": "Mine", "colors": {"bgPrimary": "#111"}})

        assert client.delete("/api/themes/mine").json() == {"success": True, "name": "mine"}
        assert client.get("/api/themes/mine").status_code == 404
