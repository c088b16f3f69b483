"""Unit tests for the plan composer (project mode and single-input mode).

All tests are synchronous and use only pytest + tmp_path; nothing is fetched
or rendered.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from app.models.publication_config import BuildTask, InlineOptions, InputFormat, InputSpec
from models.resolution import (
    ContentsEntry,
    CoverEntry,
    EpubInput,
    EpubOpfInput,
    ExportAlias,
    PageSize,
    PdfOutput,
    WebBookInput,
    WebPublicationManifestInput,
)
from resolvers.errors import ConfigError, MissingFileError, MissingInputError
from resolvers.task import load_and_resolve, parse_page_size, resolve_task_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write(root: Path, rel: str, text: str = "") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def _task(**fields) -> BuildTask:
    return BuildTask.model_validate(fields)


def _opts(root: Path, **fields) -> InlineOptions:
    return InlineOptions(cwd=str(root), **fields)


def _single(root: Path, entry: str, fmt: InputFormat | None = None) -> InlineOptions:
    return _opts(root, input=InputSpec(entry=entry, format=fmt))


def _kinds(plan) -> list[str]:
    return [e.kind for e in plan.entries]


# ---------------------------------------------------------------------------
# Project mode — defaults
# ---------------------------------------------------------------------------


def test_single_entry_without_outputs_gets_one_pdf(tmp_path: Path) -> None:
    _write(tmp_path, "a.md")
    plan = resolve_task_config(_task(entry=["a.md"]), _opts(tmp_path))

    assert plan.outputs == [PdfOutput(path=str(tmp_path / "output.pdf"))]
    assert plan.input.format == "pub-manifest"
    assert plan.input.entry == str(tmp_path / ".bookplan" / "publication.json")
    assert plan.viewer_input == WebPublicationManifestInput(
        manifest_path=str(tmp_path / ".bookplan" / "publication.json"),
        need_to_generate_manifest=True,
    )
    assert plan.title == "output.pdf"


def test_plan_defaults(tmp_path: Path) -> None:
    plan = resolve_task_config(_task(), _opts(tmp_path))

    assert plan.context == str(tmp_path)
    assert plan.entry_context_dir == str(tmp_path)
    assert plan.workspace_dir == str(tmp_path / ".bookplan")
    assert plan.themes_dir == str(tmp_path / ".bookplan" / "themes")
    assert plan.timeout == 120000
    assert plan.base == "/bookplan"
    assert plan.server.host is False
    assert plan.server.port == 13000
    assert plan.browser_type == "chromium"
    assert plan.log_level == "silent"
    assert plan.vite_config_file is True
    assert plan.executable_browser is None
    assert plan.sandbox is False
    assert plan.vfm_options.hard_line_breaks is False
    assert plan.temporary_file_prefix.startswith(".bp-")
    assert plan.entries == []


def test_plan_is_immutable(tmp_path: Path) -> None:
    plan = resolve_task_config(_task(), _opts(tmp_path))
    with pytest.raises(ValidationError):
        plan.title = "changed"


def test_title_from_single_entry_metadata(tmp_path: Path) -> None:
    _write(tmp_path, "a.md", "---\ntitle: Only Chapter\n---\n")
    plan = resolve_task_config(_task(entry="a.md"), _opts(tmp_path))
    assert plan.title == "Only Chapter"


def test_empty_entry_title_falls_back_to_output_name(tmp_path: Path) -> None:
    _write(tmp_path, "a.md", "---\ntitle: \"\"\n---\n")
    plan = resolve_task_config(_task(entry=["a.md"]), _opts(tmp_path))
    assert plan.title == "output.pdf"


def test_package_json_fallbacks(tmp_path: Path) -> None:
    _write(tmp_path, "package.json", json.dumps({"name": "my-book", "author": {"name": "Ada"}}))
    plan = resolve_task_config(_task(), _opts(tmp_path))
    assert (plan.title, plan.author) == ("my-book", "Ada")


def test_declared_title_beats_package_json(tmp_path: Path) -> None:
    _write(tmp_path, "package.json", json.dumps({"name": "my-book", "author": "Pkg Author"}))
    plan = resolve_task_config(_task(title="Real Title"), _opts(tmp_path))
    assert (plan.title, plan.author) == ("Real Title", "Pkg Author")
    assert plan.outputs[0].path == str(tmp_path / "Real Title.pdf")


def test_entry_context_directory(tmp_path: Path) -> None:
    _write(tmp_path, "src/a.md")
    plan = resolve_task_config(_task(entry_context="src", entry=["a.md"]), _opts(tmp_path))

    assert plan.entry_context_dir == str(tmp_path / "src")
    assert plan.entries[0].source.pathname == str(tmp_path / "src" / "a.md")
    assert plan.entries[0].target == str(tmp_path / ".bookplan" / "a.html")


def test_explicit_temporary_prefix_is_kept(tmp_path: Path) -> None:
    plan = resolve_task_config(_task(temporary_file_prefix=".fixed."), _opts(tmp_path))
    assert plan.temporary_file_prefix == ".fixed."


# ---------------------------------------------------------------------------
# Project mode — themes
# ---------------------------------------------------------------------------


def test_root_themes_inherited_except_by_cover(tmp_path: Path) -> None:
    _write(tmp_path, "style.css")
    _write(tmp_path, "a.md")
    _write(tmp_path, "cover.png", "png")
    plan = resolve_task_config(
        _task(theme="./style.css", entry=["a.md"], toc=True, cover="cover.png"),
        _opts(tmp_path),
    )

    by_kind = {e.kind: e for e in plan.entries}
    assert by_kind["manuscript"].themes == plan.root_themes
    assert by_kind["contents"].themes == plan.root_themes
    assert by_kind["cover"].themes == []
    assert len(plan.root_themes) == 1


def test_theme_referenced_twice_is_indexed_once(tmp_path: Path) -> None:
    _write(tmp_path, "theme.css")
    _write(tmp_path, "a.md")
    plan = resolve_task_config(
        _task(theme="./theme.css", entry=[{"path": "a.md", "theme": "./theme.css"}]),
        _opts(tmp_path),
    )
    assert len(plan.theme_indexes) == 1


# ---------------------------------------------------------------------------
# Project mode — implicit contents and cover pages
# ---------------------------------------------------------------------------


def test_toc_inserts_contents_first(tmp_path: Path) -> None:
    _write(tmp_path, "a.md")
    plan = resolve_task_config(_task(entry=["a.md"], toc=True), _opts(tmp_path))

    assert _kinds(plan) == ["contents", "manuscript"]
    contents = plan.entries[0]
    assert isinstance(contents, ContentsEntry)
    assert contents.target == str(tmp_path / ".bookplan" / "index.html")
    assert contents.toc_title == "Table of Contents"
    assert contents.section_depth == 0


def test_toc_path_and_title_settings(tmp_path: Path) -> None:
    plan = resolve_task_config(
        _task(toc="contents.html", toc_title="Index"), _opts(tmp_path)
    )
    contents = plan.entries[0]
    assert contents.target == str(tmp_path / ".bookplan" / "contents.html")
    assert contents.toc_title == "Index"


def test_toc_object_title_wins(tmp_path: Path) -> None:
    plan = resolve_task_config(
        _task(toc={"title": "Contents", "section_depth": 2}, toc_title="Index"),
        _opts(tmp_path),
    )
    assert plan.entries[0].toc_title == "Contents"
    assert plan.entries[0].section_depth == 2


def test_cover_is_inserted_before_contents(tmp_path: Path) -> None:
    _write(tmp_path, "a.md")
    _write(tmp_path, "images/cover.png", "png")
    plan = resolve_task_config(
        _task(title="Book", entry=["a.md"], toc=True, cover="images/cover.png"),
        _opts(tmp_path),
    )

    assert _kinds(plan) == ["cover", "contents", "manuscript"]
    cover = plan.entries[0]
    assert isinstance(cover, CoverEntry)
    assert cover.target == str(tmp_path / ".bookplan" / "cover.html")
    assert cover.cover_image_src == str(tmp_path / "images" / "cover.png")
    assert cover.cover_image_alt == "Cover image"
    assert cover.title == "Book"


def test_cover_page_can_be_disabled(tmp_path: Path) -> None:
    _write(tmp_path, "cover.png", "png")
    plan = resolve_task_config(
        _task(cover={"src": "cover.png", "html_path": False}), _opts(tmp_path)
    )
    assert _kinds(plan) == []
    assert plan.cover.html_path is None
    assert plan.cover.src == str(tmp_path / "cover.png")


@pytest.mark.parametrize("html_path", ["", None])
def test_cover_page_disabled_by_empty_path(tmp_path: Path, html_path: str | None) -> None:
    _write(tmp_path, "cover.png", "png")
    plan = resolve_task_config(
        _task(cover={"src": "cover.png", "html_path": html_path}), _opts(tmp_path)
    )
    assert _kinds(plan) == []
    assert plan.cover.html_path is None


def test_cover_shorthand_keeps_default_page(tmp_path: Path) -> None:
    _write(tmp_path, "cover.png", "png")
    plan = resolve_task_config(_task(cover="cover.png"), _opts(tmp_path))
    assert _kinds(plan) == ["cover"]
    assert plan.cover.html_path == str(tmp_path / ".bookplan" / "cover.html")


def test_declared_contents_is_not_duplicated(tmp_path: Path) -> None:
    _write(tmp_path, "a.md")
    plan = resolve_task_config(
        _task(entry=["a.md", {"rel": "contents"}], toc=True), _opts(tmp_path)
    )
    assert _kinds(plan) == ["manuscript", "contents"]


def test_implicit_cover_requires_existing_image(tmp_path: Path) -> None:
    with pytest.raises(MissingFileError, match="cover image does not exist"):
        resolve_task_config(_task(cover="missing.png"), _opts(tmp_path))


# ---------------------------------------------------------------------------
# Project mode — aliases
# ---------------------------------------------------------------------------


def test_self_overwrite_aliases_differ_per_run(tmp_path: Path) -> None:
    source = _write(tmp_path, "index.html", "<title>Home</title>")
    task = _task(workspace_dir=".", entry=["index.html"])

    first = resolve_task_config(task, _opts(tmp_path))
    second = resolve_task_config(task, _opts(tmp_path))

    for plan in (first, second):
        (alias,) = plan.export_aliases
        assert alias.target == str(source)
        assert plan.entries[0].target == alias.source
        assert Path(alias.source).is_file()
    assert first.entries[0].target != second.entries[0].target


# ---------------------------------------------------------------------------
# Single-input mode
# ---------------------------------------------------------------------------


def test_single_markdown_input(tmp_path: Path) -> None:
    source = _write(tmp_path, "sample.md")
    plan = resolve_task_config(_task(), _single(tmp_path, "sample.md", InputFormat.MARKDOWN))

    workspace = tmp_path / ".bookplan"
    prefix = plan.temporary_file_prefix
    staged = workspace / f"{prefix}sample.html"
    manifest = workspace / f"{prefix}publication.json"

    assert plan.input.format == "markdown"
    assert plan.input.entry == str(source)
    assert plan.entries[0].target == str(staged)
    assert plan.viewer_input == WebPublicationManifestInput(
        manifest_path=str(manifest), need_to_generate_manifest=True
    )
    assert plan.export_aliases == [
        ExportAlias(source=str(staged), target=str(workspace / "sample.html")),
        ExportAlias(source=str(manifest), target=str(workspace / "publication.json")),
    ]
    assert staged.is_file() and manifest.is_file()
    assert plan.title == "sample.md"


def test_single_markdown_uses_front_matter_title(tmp_path: Path) -> None:
    _write(tmp_path, "sample.md", "---\ntitle: Sample\n---\n")
    plan = resolve_task_config(_task(), _single(tmp_path, "sample.md", InputFormat.MARKDOWN))
    assert plan.title == "Sample"
    assert plan.entries[0].title == "Sample"


def test_single_markdown_empty_title_falls_back_to_file_name(tmp_path: Path) -> None:
    _write(tmp_path, "sample.md", "---\ntitle: \"\"\n---\n")
    plan = resolve_task_config(_task(), _single(tmp_path, "sample.md", InputFormat.MARKDOWN))
    assert plan.title == "sample.md"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://example.com/book", "https://example.com/book/"),
        ("https://example.com/book/", "https://example.com/book/"),
        ("https://example.com/book/index.html", "https://example.com/book/index.html"),
        ("https://example.com/page.htm?x=1", "https://example.com/page.htm?x=1"),
        ("https://example.com", "https://example.com/"),
    ],
)
def test_webbook_url_normalization(tmp_path: Path, url: str, expected: str) -> None:
    plan = resolve_task_config(_task(), _single(tmp_path, url, InputFormat.WEBBOOK))
    assert plan.viewer_input == WebBookInput(webbook_entry_url=expected)
    assert plan.entries == []


def test_local_webbook_becomes_file_url(tmp_path: Path) -> None:
    page = _write(tmp_path, "site/index.html")
    plan = resolve_task_config(_task(), _single(tmp_path, "site/index.html", InputFormat.WEBBOOK))
    assert plan.viewer_input.webbook_entry_url == page.as_uri()


def test_pub_manifest_input(tmp_path: Path) -> None:
    manifest = _write(tmp_path, "publication.json", "{}")
    plan = resolve_task_config(
        _task(), _single(tmp_path, "publication.json", InputFormat.PUB_MANIFEST)
    )
    assert plan.viewer_input == WebPublicationManifestInput(
        manifest_path=str(manifest), need_to_generate_manifest=False
    )
    assert plan.export_aliases == []


def test_epub_input_extracts_beside_source(tmp_path: Path) -> None:
    epub = _write(tmp_path, "books/novel.epub", "zip")
    plan = resolve_task_config(_task(), _single(tmp_path, "books/novel.epub", InputFormat.EPUB))

    assert isinstance(plan.viewer_input, EpubInput)
    assert plan.viewer_input.epub_path == str(epub)
    assert plan.viewer_input.epub_tmp_output_dir == str(
        tmp_path / "books" / f"{plan.temporary_file_prefix}novel.epub"
    )


def test_epub_opf_input(tmp_path: Path) -> None:
    opf = _write(tmp_path, "OEBPS/content.opf", "<package/>")
    plan = resolve_task_config(
        _task(), _single(tmp_path, "OEBPS/content.opf", InputFormat.EPUB_OPF)
    )
    assert plan.viewer_input == EpubOpfInput(epub_opf_path=str(opf))


def test_missing_single_input(tmp_path: Path) -> None:
    with pytest.raises(MissingInputError, match="Specified input does not exist"):
        resolve_task_config(_task(), _single(tmp_path, "nope.md", InputFormat.MARKDOWN))


def test_missing_single_input_is_a_missing_file_error(tmp_path: Path) -> None:
    with pytest.raises(MissingFileError):
        resolve_task_config(_task(), _single(tmp_path, "nope.epub", InputFormat.EPUB))


# ---------------------------------------------------------------------------
# Shared context
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "size, expected",
    [
        ("A4", PageSize(format="A4")),
        ("182mm,257mm", PageSize(width="182mm", height="257mm")),
    ],
)
def test_parse_page_size(size: str, expected: PageSize) -> None:
    assert parse_page_size(size) == expected


@pytest.mark.parametrize("size", ["1,2,3", ",10mm"])
def test_unparsable_page_size(size: str) -> None:
    with pytest.raises(ConfigError, match="Cannot parse size"):
        parse_page_size(size)


def test_copy_asset_rules(tmp_path: Path) -> None:
    plan = resolve_task_config(
        _task(
            include_assets="assets/**",
            copy_asset={
                "excludes": ["drafts/**"],
                "include_file_extensions": ["pdf", "png"],
                "exclude_file_extensions": ["gif"],
            },
        ),
        _opts(tmp_path),
    )
    rules = plan.copy_asset
    assert rules.includes == ["assets/**"]
    assert rules.excludes == ["drafts/**"]
    assert "gif" not in rules.file_extensions
    assert rules.file_extensions.count("png") == 1
    assert rules.file_extensions[-1] == "pdf"


def test_proxy_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HTTP_PROXY", "http://proxy.local:8080")
    monkeypatch.setenv("NOPROXY", "localhost")
    plan = resolve_task_config(_task(), _opts(tmp_path, proxy_user="u", proxy_pass="p"))
    assert plan.proxy.server == "http://proxy.local:8080"
    assert plan.proxy.bypass == "localhost"
    assert (plan.proxy.username, plan.proxy.password) == ("u", "p")


def test_no_proxy_by_default(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HTTP_PROXY", raising=False)
    plan = resolve_task_config(_task(), _opts(tmp_path))
    assert plan.proxy is None


def test_styles_become_urls(tmp_path: Path) -> None:
    plan = resolve_task_config(
        _task(),
        _opts(tmp_path, style="extra.css", user_style="https://example.com/user.css"),
    )
    assert plan.custom_style == (tmp_path / "extra.css").as_uri()
    assert plan.custom_user_style == "https://example.com/user.css"


def test_project_sections_pass_through(tmp_path: Path) -> None:
    plan = resolve_task_config(
        _task(
            size="A5",
            language="ja",
            reading_progression="rtl",
            server={"host": True, "port": 8000},
            browser="firefox",
            vite={"server": {"open": False}},
            vite_config_file=False,
            vfm={"hard_line_breaks": True, "math": False},
        ),
        _opts(tmp_path, sandbox=True, log_level="debug"),
    )
    assert plan.size == PageSize(format="A5")
    assert (plan.language, plan.reading_progression) == ("ja", "rtl")
    assert plan.server.host is True and plan.server.port == 8000
    assert plan.browser_type == "firefox"
    assert plan.vite == {"server": {"open": False}}
    assert plan.vite_config_file is False
    assert plan.vfm_options.hard_line_breaks is True
    assert plan.vfm_options.model_dump()["math"] is False
    assert plan.sandbox is True
    assert plan.log_level == "debug"


# ---------------------------------------------------------------------------
# load_and_resolve
# ---------------------------------------------------------------------------


def test_project_file_directory_becomes_context(tmp_path: Path) -> None:
    project = tmp_path / "book"
    _write(project, "a.md")
    config = _write(project, "bookplan.config.yaml", "title: YAML Book\nentry:\n  - a.md\n")

    plan = load_and_resolve(InlineOptions(config=str(config)))

    assert plan.context == str(project)
    assert plan.title == "YAML Book"
    assert plan.entries[0].target == str(project / ".bookplan" / "a.html")


def test_project_file_discovered_in_cwd_and_overridden(tmp_path: Path) -> None:
    _write(tmp_path, "a.md")
    _write(tmp_path, "bookplan.config.json", json.dumps({"title": "JSON Book", "entry": "a.md"}))

    plan = load_and_resolve(_opts(tmp_path, title="Override"))

    assert plan.title == "Override"
    assert plan.outputs[0].path == str(tmp_path / "Override.pdf")


def test_single_input_format_is_inferred(tmp_path: Path) -> None:
    _write(tmp_path, "sample.md")
    plan = load_and_resolve(_opts(tmp_path, input=InputSpec(entry="sample.md")))
    assert plan.input.format == "markdown"


def test_single_input_is_resolved_against_project_directory(tmp_path: Path) -> None:
    project = tmp_path / "book"
    _write(project, "doc.md")
    config = _write(project, "bookplan.config.json", json.dumps({"title": "Sub"}))

    plan = load_and_resolve(InlineOptions(config=str(config), input=InputSpec(entry="doc.md")))

    assert plan.input.entry == str(project / "doc.md")


def test_single_input_outside_project_directory_is_missing(tmp_path: Path) -> None:
    project = tmp_path / "book"
    _write(tmp_path, "doc.md")
    config = _write(project, "bookplan.config.json", json.dumps({"title": "Sub"}))

    with pytest.raises(MissingInputError) as excinfo:
        load_and_resolve(InlineOptions(config=str(config), input=InputSpec(entry="doc.md")))
    assert str(project / "doc.md") in str(excinfo.value)
