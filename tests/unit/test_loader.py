"""Unit tests for project file discovery, contract validation and parsing."""

import json
from pathlib import Path

import pytest

from app.loader import find_project_file, load_project_file, read_package_metadata
from app.models.publication_config import (
    ArticleEntryObject,
    ContentsEntryObject,
    CoverEntryObject,
    OutputFormat,
)
from resolvers.errors import ConfigError, ProjectFileError


def _write(root: Path, rel: str, text: str) -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def test_find_project_file_prefers_json(tmp_path: Path) -> None:
    _write(tmp_path, "bookplan.config.yml", "title: yml\n")
    _write(tmp_path, "bookplan.config.json", "{}")
    assert find_project_file(str(tmp_path)) == str(tmp_path / "bookplan.config.json")


def test_find_project_file_none(tmp_path: Path) -> None:
    assert find_project_file(str(tmp_path)) is None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def test_yaml_shorthands_are_widened(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "bookplan.config.yaml",
        "\n".join(
            [
                "title: My Book",
                "theme: theme-book",
                "entry:",
                "  - intro.md",
                "  - rel: contents",
                "  - rel: cover",
                "    image_src: cover.png",
                "  - path: body.md",
                "    theme:",
                "      specifier: theme-other",
                "      import: print.css",
                "output:",
                "  - book.pdf",
                "  - path: site",
                "    format: webpub",
                "toc: true",
                "cover: cover.png",
            ]
        ),
    )

    task = load_project_file(str(path))

    assert task.title == "My Book"
    assert task.theme == ["theme-book"]
    assert [type(e) for e in task.entry] == [
        ArticleEntryObject,
        ContentsEntryObject,
        CoverEntryObject,
        ArticleEntryObject,
    ]
    assert task.entry[3].theme[0].import_path == "print.css"
    assert [(o.path, o.format) for o in task.output] == [
        ("book.pdf", None),
        ("site", OutputFormat.WEBPUB),
    ]
    assert task.toc is not None and task.toc.html_path is None
    assert task.cover.src == "cover.png"


def test_json_project_file(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "custom.json",
        json.dumps({"entry": "a.md", "toc": False, "cover": {"src": "c.png", "html_path": False}}),
    )
    task = load_project_file(str(path))
    assert task.entry[0].path == "a.md"
    assert task.toc is None
    assert task.cover.html_path is False


def test_contract_violation(tmp_path: Path) -> None:
    path = _write(tmp_path, "bookplan.config.json", json.dumps({"titel": "typo"}))
    with pytest.raises(ProjectFileError, match="PublicationConfig.v1.json"):
        load_project_file(str(path))


def test_unknown_output_format_violates_contract(tmp_path: Path) -> None:
    path = _write(
        tmp_path, "bookplan.config.json", json.dumps({"output": {"path": "a", "format": "docx"}})
    )
    with pytest.raises(ProjectFileError):
        load_project_file(str(path))


def test_project_file_must_be_a_mapping(tmp_path: Path) -> None:
    path = _write(tmp_path, "bookplan.config.yaml", "- just\n- a list\n")
    with pytest.raises(ProjectFileError):
        load_project_file(str(path))


def test_unparsable_project_file(tmp_path: Path) -> None:
    path = _write(tmp_path, "bookplan.config.json", "{not json")
    with pytest.raises(ProjectFileError, match="failed to load"):
        load_project_file(str(path))


def test_entry_object_without_path(tmp_path: Path) -> None:
    path = _write(tmp_path, "bookplan.config.json", json.dumps({"entry": [{"title": "x"}]}))
    with pytest.raises(ProjectFileError, match="invalid project file"):
        load_project_file(str(path))


def test_missing_project_file(tmp_path: Path) -> None:
    with pytest.raises(ProjectFileError, match="not found"):
        load_project_file(str(tmp_path / "absent.json"))


def test_project_file_errors_are_config_errors(tmp_path: Path) -> None:
    path = _write(tmp_path, "bookplan.config.json", "[]")
    with pytest.raises(ConfigError) as exc_info:
        load_project_file(str(path))
    assert str(exc_info.value).startswith("ERROR: ")


# ---------------------------------------------------------------------------
# package.json
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "author, expected",
    [("Ada", "Ada"), ({"name": "Ada", "email": "a@example.com"}, "Ada"), (None, None)],
)
def test_read_package_metadata(tmp_path: Path, author, expected) -> None:
    data = {"name": "my-book"}
    if author is not None:
        data["author"] = author
    _write(tmp_path, "package.json", json.dumps(data))
    assert read_package_metadata(str(tmp_path)) == {"name": "my-book", "author": expected}


def test_read_package_metadata_absent(tmp_path: Path) -> None:
    assert read_package_metadata(str(tmp_path)) is None
