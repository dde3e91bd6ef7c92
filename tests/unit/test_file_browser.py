"""
Unit tests for the project file browser.
"""
import asyncio
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from devconsole.file_browser import (
    FileTooLargeError,
    build_tree,
    count_files,
    get_file_type,
    read_text_file,
)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "app"
    (root / "src" / "lib").mkdir(parents=True)
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / "src" / "main.py").write_text("print('hi')\n")
    (root / "src" / "lib" / "util.py").write_text("")
    (root / "README.md").write_text("# App\n")
    (root / ".env").write_text("SECRET=1\n")
    (root / "node_modules" / "pkg" / "index.js").write_text("")
    return root


class TestBuildTree:
    """Test recursive listing."""

    def test_directories_first_hidden_and_node_modules_skipped(self, project):
        tree = build_tree(project, project)

        assert [node["name"] for node in tree] == ["src", "README.md"]
        assert tree[0]["is_directory"] is True
        assert tree[1]["type"] == "doc"
        assert tree[1]["size"] == 6

    def test_paths_relative_to_root(self, project):
        tree = build_tree(project, project)
        src = tree[0]

        assert [child["path"] for child in src["children"]] == ["src/lib", "src/main.py"]
        assert src["children"][0]["children"][0]["path"] == "src/lib/util.py"

    def test_max_depth(self, project):
        tree = build_tree(project, project, max_depth=0)
        assert tree[0]["children"] == []


class TestFiles:
    """Test file reads and counts."""

    def test_file_types(self):
        assert get_file_type("app.tsx") == "code"
        assert get_file_type("config.YAML") == "config"
        assert get_file_type("logo.svg") == "image"
        assert get_file_type("Makefile") == "other"

    def test_read_text_file(self, project):
        assert asyncio.run(read_text_file(project / "src" / "main.py", 1024)) == "print('hi')\n"

    def test_read_too_large(self, project):
        with pytest.raises(FileTooLargeError):
            asyncio.run(read_text_file(project / "README.md", 2))

    def test_read_missing(self, project):
        with pytest.raises(FileNotFoundError):
            asyncio.run(read_text_file(project / "missing.txt", 1024))

    def test_count_files_excludes_hidden_and_dependencies(self, project):
        assert asyncio.run(count_files(project)) == 3
