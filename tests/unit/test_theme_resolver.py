"""Unit tests for theme reference resolution and the per-plan ThemeIndex."""

import json
from pathlib import Path

import pytest

from app.models.publication_config import ThemeObject
from models.resolution import FileTheme, PackageTheme, UriTheme
from resolvers.errors import InvalidThemeSpecifierError
from resolvers.theme import ThemeIndex, parse_theme, parse_themes


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dirs(root: Path) -> tuple[str, str, str]:
    """Return (context, workspace_dir, themes_dir) rooted at *root*."""
    workspace = root / ".bookplan"
    return str(root), str(workspace), str(workspace / "themes")


def _write(root: Path, rel: str, text: str = "") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def test_uri_theme_uses_last_path_segment_as_name(tmp_path: Path) -> None:
    theme = parse_theme("https://example.com/themes/book.css", *_dirs(tmp_path))
    assert isinstance(theme, UriTheme)
    assert theme.name == "book.css"
    assert theme.location == "https://example.com/themes/book.css"


def test_css_file_is_copied_into_workspace(tmp_path: Path) -> None:
    css = _write(tmp_path, "styles/main.css", "body {}")
    context, workspace, themes_dir = _dirs(tmp_path)

    theme = parse_theme("./styles/main.css", context, workspace, themes_dir)

    assert isinstance(theme, FileTheme)
    assert theme.name == "main.css"
    assert theme.source == str(css)
    assert theme.location == str(Path(workspace) / "styles" / "main.css")


def test_registry_package_lands_in_package_store(tmp_path: Path) -> None:
    context, workspace, themes_dir = _dirs(tmp_path)
    theme = parse_theme("@scope/theme-book@^1", context, workspace, themes_dir)

    assert isinstance(theme, PackageTheme)
    assert theme.name == "@scope/theme-book"
    assert theme.specifier == "@scope/theme-book@^1"
    assert theme.location == str(Path(themes_dir) / "node_modules" / "@scope" / "theme-book")


def test_local_package_directory_takes_package_json_name(tmp_path: Path) -> None:
    _write(tmp_path, "my-theme/package.json", json.dumps({"name": "theme-custom"}))
    context, workspace, themes_dir = _dirs(tmp_path)

    theme = parse_theme("./my-theme", context, workspace, themes_dir)

    assert isinstance(theme, PackageTheme)
    assert theme.name == "theme-custom"
    assert theme.specifier == str(tmp_path / "my-theme")
    assert theme.location == str(Path(themes_dir) / "node_modules" / "theme-custom")


def test_theme_object_keeps_import_list(tmp_path: Path) -> None:
    ref = ThemeObject.model_validate({"specifier": "theme-book", "import": ["a.css", "b.css"]})
    theme = parse_theme(ref, *_dirs(tmp_path))
    assert isinstance(theme, PackageTheme)
    assert theme.import_path == ["a.css", "b.css"]


def test_theme_mapping_is_accepted(tmp_path: Path) -> None:
    theme = parse_theme({"specifier": "theme-book", "import": "print.css"}, *_dirs(tmp_path))
    assert theme.import_path == "print.css"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_directory_without_package_json_has_no_name(tmp_path: Path) -> None:
    (tmp_path / "bare-theme").mkdir()
    with pytest.raises(InvalidThemeSpecifierError, match="could not determine the package name"):
        parse_theme("./bare-theme", *_dirs(tmp_path))


def test_missing_css_file_is_not_a_file_theme(tmp_path: Path) -> None:
    with pytest.raises(InvalidThemeSpecifierError):
        parse_theme("./missing.css", *_dirs(tmp_path))


def test_git_theme_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidThemeSpecifierError, match="not allowed"):
        parse_theme("someone/theme-repo", *_dirs(tmp_path))


# ---------------------------------------------------------------------------
# ThemeIndex
# ---------------------------------------------------------------------------


def test_same_css_twice_is_indexed_once(tmp_path: Path) -> None:
    _write(tmp_path, "theme.css", "")
    first, second = parse_themes(["./theme.css", "theme.css"], *_dirs(tmp_path))

    index = ThemeIndex()
    kept = index.update([first, second])

    assert len(index) == 1
    assert kept[0] is kept[1] is first
    assert second in index


def test_index_preserves_first_seen_order(tmp_path: Path) -> None:
    _write(tmp_path, "a.css")
    themes = parse_themes(
        ["https://example.com/z.css", "./a.css", "theme-book"], *_dirs(tmp_path)
    )
    index = ThemeIndex(themes)
    assert [t.type for t in index] == ["uri", "file", "package"]
    assert index.as_list() == list(index)
