"""Pydantic models for the resolved build plan.

Every variant family (themes, entry sources, entries, outputs, viewer inputs)
is a discriminated union keyed by a literal tag field so that consumers can
dispatch on the tag without knowing which composer produced the plan.
"""

from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

ManuscriptMediaType = Literal["text/markdown", "text/html", "application/xhtml+xml"]

MANUSCRIPT_MEDIA_TYPES: tuple[str, ...] = (
    "text/markdown",
    "text/html",
    "application/xhtml+xml",
)

PageBreak = Literal["left", "right", "recto", "verso"]


# ---------------------------------------------------------------------------
# Themes
# ---------------------------------------------------------------------------


class UriTheme(BaseModel):
    """A stylesheet loaded directly from a URL."""

    type: Literal["uri"] = "uri"
    name: str
    location: str


class FileTheme(BaseModel):
    """A single local CSS file, copied into the workspace."""

    type: Literal["file"] = "file"
    name: str
    source: str
    """Absolute path of the stylesheet on disk."""

    location: str
    """Workspace-relative copy destination (absolute path)."""


class PackageTheme(BaseModel):
    """A theme package installed into the themes package store."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["package"] = "package"
    name: str
    specifier: str
    """Registry specifier or local directory path handed to the installer."""

    location: str
    """``<themesDir>/node_modules/<name>``."""

    import_path: str | list[str] | None = Field(default=None, alias="import")


ParsedTheme = Annotated[Union[UriTheme, FileTheme, PackageTheme], Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Entry sources
# ---------------------------------------------------------------------------


class FileEntrySource(BaseModel):
    type: Literal["file"] = "file"
    pathname: str
    content_type: ManuscriptMediaType


class UriEntrySource(BaseModel):
    type: Literal["uri"] = "uri"
    href: str
    root_dir: str
    """Directory under which the fetched mirror of *href* is stored."""


EntrySource = Annotated[
    Union[FileEntrySource, UriEntrySource], Field(discriminator="type")
]


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class TocTransform(BaseModel):
    """Optional hooks applied by the document transformer to the TOC lists."""

    transform_document_list: Callable[..., Any] | None = Field(default=None, exclude=True)
    transform_section_list: Callable[..., Any] | None = Field(default=None, exclude=True)


class ManuscriptEntry(BaseModel):
    kind: Literal["manuscript"] = "manuscript"
    content_type: ManuscriptMediaType
    title: str | None = None
    themes: list[ParsedTheme] = Field(default_factory=list)
    source: EntrySource
    target: str
    rel: str | list[str] | None = None


class ContentsEntry(BaseModel):
    kind: Literal["contents"] = "contents"
    rel: Literal["contents"] = "contents"
    title: str | None = None
    themes: list[ParsedTheme] = Field(default_factory=list)
    template: EntrySource | None = None
    target: str
    toc_title: str
    section_depth: int = 0
    transform: TocTransform = Field(default_factory=TocTransform)
    page_break_before: PageBreak | None = None
    page_counter_reset: int | None = None


class CoverEntry(BaseModel):
    kind: Literal["cover"] = "cover"
    rel: Literal["cover"] = "cover"
    title: str | None = None
    themes: list[ParsedTheme] = Field(default_factory=list)
    template: EntrySource | None = None
    target: str
    cover_image_src: str
    cover_image_alt: str
    page_break_before: PageBreak | None = None


ParsedEntry = Annotated[
    Union[ManuscriptEntry, ContentsEntry, CoverEntry], Field(discriminator="kind")
]


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class PdfOutput(BaseModel):
    format: Literal["pdf"] = "pdf"
    path: str
    render_mode: Literal["local", "docker"] = "local"
    preflight: Literal["press-ready", "press-ready-local"] | None = None
    preflight_option: list[str] = Field(default_factory=list)


class EpubOutput(BaseModel):
    format: Literal["epub"] = "epub"
    path: str
    version: Literal["3.0"] = "3.0"


class WebPublicationOutput(BaseModel):
    format: Literal["webpub"] = "webpub"
    path: str


OutputConfig = Annotated[
    Union[PdfOutput, EpubOutput, WebPublicationOutput], Field(discriminator="format")
]


# ---------------------------------------------------------------------------
# Viewer input
# ---------------------------------------------------------------------------


class WebPublicationManifestInput(BaseModel):
    type: Literal["webpub"] = "webpub"
    manifest_path: str
    need_to_generate_manifest: bool


class EpubInput(BaseModel):
    type: Literal["epub"] = "epub"
    epub_path: str
    epub_tmp_output_dir: str


class EpubOpfInput(BaseModel):
    type: Literal["epub-opf"] = "epub-opf"
    epub_opf_path: str


class WebBookInput(BaseModel):
    type: Literal["webbook"] = "webbook"
    webbook_entry_url: str


ViewerInput = Annotated[
    Union[WebPublicationManifestInput, EpubInput, EpubOpfInput, WebBookInput],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Plan-level records
# ---------------------------------------------------------------------------


class ExportAlias(BaseModel):
    """Content staged at *source* must be materialized at *target*."""

    source: str
    target: str


class PageSize(BaseModel):
    format: str | None = None
    width: str | None = None
    height: str | None = None


class CopyAssetRules(BaseModel):
    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=list)
    file_extensions: list[str] = Field(default_factory=list)


class VfmOptions(BaseModel):
    model_config = ConfigDict(extra="allow")

    hard_line_breaks: bool = False
    disable_format_html: bool = False


class CoverSettings(BaseModel):
    src: str
    name: str
    html_path: str | None = None
    """Absolute path of the generated cover page; ``None`` disables it."""


class ProxySettings(BaseModel):
    server: str
    bypass: str | None = None
    username: str | None = None
    password: str | None = None


class ServerSettings(BaseModel):
    host: str | bool = False
    port: int = 13000


class InputDescriptor(BaseModel):
    format: Literal["markdown", "webbook", "pub-manifest", "epub", "epub-opf"]
    entry: str


class ResolvedTaskConfig(BaseModel):
    """The terminal, immutable build plan handed to external collaborators."""

    model_config = ConfigDict(frozen=True)

    context: str
    entry_context_dir: str
    workspace_dir: str
    themes_dir: str
    entries: list[ParsedEntry]
    input: InputDescriptor
    viewer_input: ViewerInput
    outputs: list[OutputConfig]
    theme_indexes: list[ParsedTheme]
    root_themes: list[ParsedTheme]
    copy_asset: CopyAssetRules
    export_aliases: list[ExportAlias]
    temporary_file_prefix: str
    size: PageSize | None = None
    crop_marks: bool = False
    bleed: str | None = None
    crop_offset: str | None = None
    css: str | None = None
    custom_style: str | None = None
    custom_user_style: str | None = None
    single_doc: bool = False
    quick: bool = False
    title: str | None = None
    author: str | None = None
    language: str | None = None
    reading_progression: Literal["ltr", "rtl"] | None = None
    vfm_options: VfmOptions = Field(default_factory=VfmOptions)
    cover: CoverSettings | None = None
    timeout: int
    sandbox: bool = False
    executable_browser: str | None = None
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    proxy: ProxySettings | None = None
    image: str
    viewer: str | None = None
    viewer_param: str | None = None
    log_level: Literal["silent", "info", "verbose", "debug"] = "silent"
    ignore_https_errors: bool = False
    base: str
    server: ServerSettings
    vite: dict[str, Any] | None = None
    vite_config_file: str | bool = True
