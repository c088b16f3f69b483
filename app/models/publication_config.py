"""Typed models for the declared publication project and inline CLI options.

A project file is first checked against the JSON Schema contract in
``app/contracts/PublicationConfig.v1.json`` and then parsed into
:class:`BuildTask`.  Shorthand forms (a bare string entry, a single theme,
``toc: true``, a bare cover image path) are widened here so that the resolver
only ever sees the long form.
"""

from enum import Enum
from typing import Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InputFormat(str, Enum):
    MARKDOWN     = "markdown"
    WEBBOOK      = "webbook"
    PUB_MANIFEST = "pub-manifest"
    EPUB         = "epub"
    EPUB_OPF     = "epub-opf"


class OutputFormat(str, Enum):
    PDF    = "pdf"
    EPUB   = "epub"
    WEBPUB = "webpub"


class BrowserType(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX  = "firefox"
    WEBKIT   = "webkit"


PageBreak = Literal["left", "right", "recto", "verso"]


class ThemeObject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    specifier:   str
    import_path: str | list[str] | None = Field(default=None, alias="import")


ThemeReference = Union[str, ThemeObject]


def _as_list(value: Any) -> Any:
    if value is None or isinstance(value, list):
        return value
    return [value]


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class _EntryBase(BaseModel):
    title: str | None = None
    theme: list[ThemeReference] | None = None

    @field_validator("theme", mode="before")
    @classmethod
    def _widen_theme(cls, v: Any) -> Any:
        return _as_list(v)


class ArticleEntryObject(_EntryBase):
    path:            str
    encoding_format: str | None = None
    rel:             str | list[str] | None = None
    output:          str | None = None


class ContentsEntryObject(_EntryBase):
    rel:                Literal["contents"]
    path:               str | None = None
    output:             str | None = None
    page_break_before:  PageBreak | None = None
    page_counter_reset: int | None = None


class CoverEntryObject(_EntryBase):
    rel:               Literal["cover"]
    path:              str | None = None
    output:            str | None = None
    image_src:         str | None = None
    image_alt:         str | None = None
    page_break_before: PageBreak | None = None


EntryObject = Union[ContentsEntryObject, CoverEntryObject, ArticleEntryObject]


def coerce_entry(raw: Any) -> EntryObject:
    """Build the entry model matching *raw*'s declared role."""
    if isinstance(raw, (ArticleEntryObject, ContentsEntryObject, CoverEntryObject)):
        return raw
    if isinstance(raw, str):
        return ArticleEntryObject(path=raw)
    if isinstance(raw, dict):
        rel = raw.get("rel")
        if rel == "contents":
            return ContentsEntryObject.model_validate(raw)
        if rel == "cover":
            return CoverEntryObject.model_validate(raw)
        return ArticleEntryObject.model_validate(raw)
    raise TypeError(f"entry must be a string or a mapping, got {type(raw).__name__}")


# ---------------------------------------------------------------------------
# Project-level sections
# ---------------------------------------------------------------------------


class TocConfig(BaseModel):
    title:                   str | None = None
    html_path:               str | None = None
    section_depth:           int | None = None
    transform_document_list: Callable[..., Any] | None = Field(default=None, exclude=True)
    transform_section_list:  Callable[..., Any] | None = Field(default=None, exclude=True)


class CoverConfig(BaseModel):
    src:       str
    name:      str | None = None
    html_path: str | Literal[False] | None = None
    """Cover page path; unset means the default, an explicit ``False``, ``""``
    or ``None`` disables it."""


class OutputDeclaration(BaseModel):
    path:             str
    format:           OutputFormat | None = None
    render_mode:      Literal["local", "docker"] | None = None
    preflight:        Literal["press-ready", "press-ready-local"] | None = None
    preflight_option: list[str] | None = None


class ServerConfig(BaseModel):
    host: str | bool | None = None
    port: int | None = None


class CopyAssetConfig(BaseModel):
    includes:                list[str] | None = None
    excludes:                list[str] | None = None
    include_file_extensions: list[str] | None = None
    exclude_file_extensions: list[str] | None = None


class VfmConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    hard_line_breaks:    bool | None = None
    disable_format_html: bool | None = None


class BuildTask(BaseModel):
    """One publication as declared in a project file."""

    title:                 str | None = None
    author:                str | None = None
    language:              str | None = None
    reading_progression:   Literal["ltr", "rtl"] | None = None
    theme:                 list[ThemeReference] | None = None
    entry:                 list[EntryObject] = Field(default_factory=list)
    entry_context:         str | None = None
    output:                list[OutputDeclaration] | None = None
    workspace_dir:         str | None = None
    include_assets:        list[str] | None = None
    copy_asset:            CopyAssetConfig | None = None
    size:                  str | None = None
    press_ready:           bool | None = None
    toc:                   TocConfig | None = None
    toc_title:             str | None = None
    cover:                 CoverConfig | None = None
    timeout:               int | None = None
    vfm:                   VfmConfig | None = None
    image:                 str | None = None
    viewer:                str | None = None
    viewer_param:          str | None = None
    browser:               BrowserType | None = None
    base:                  str | None = None
    server:                ServerConfig | None = None
    temporary_file_prefix: str | None = None
    vite:                  dict[str, Any] | None = None
    vite_config_file:      str | bool | None = None

    @field_validator("theme", "include_assets", mode="before")
    @classmethod
    def _widen_single(cls, v: Any) -> Any:
        return _as_list(v)

    @field_validator("entry", mode="before")
    @classmethod
    def _coerce_entries(cls, v: Any) -> Any:
        if v is None:
            return []
        return [coerce_entry(e) for e in _as_list(v)]

    @field_validator("output", mode="before")
    @classmethod
    def _coerce_outputs(cls, v: Any) -> Any:
        v = _as_list(v)
        if v is None:
            return None
        return [{"path": o} if isinstance(o, str) else o for o in v]

    @field_validator("toc", mode="before")
    @classmethod
    def _coerce_toc(cls, v: Any) -> Any:
        if v is None or v is False:
            return None
        if v is True:
            return {}
        if isinstance(v, str):
            return {"html_path": v}
        return v

    @field_validator("cover", mode="before")
    @classmethod
    def _coerce_cover(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"src": v}
        return v


# ---------------------------------------------------------------------------
# Inline (CLI-derived) options
# ---------------------------------------------------------------------------


class InputSpec(BaseModel):
    entry:  str
    format: InputFormat | None = None


class InlineOptions(BaseModel):
    """Options supplied on the command line rather than in a project file."""

    cwd:                 str | None = None
    config:              str | None = None
    input:               InputSpec | None = None

    title:               str | None = None
    author:              str | None = None
    language:            str | None = None
    reading_progression: Literal["ltr", "rtl"] | None = None
    theme:               list[ThemeReference] | None = None
    size:                str | None = None
    press_ready:         bool | None = None
    timeout:             int | None = None
    targets:             list[OutputDeclaration] | None = None

    crop_marks:          bool | None = None
    bleed:               str | None = None
    crop_offset:         str | None = None
    css:                 str | None = None
    style:               str | None = None
    user_style:          str | None = None
    single_doc:          bool | None = None
    quick:               bool | None = None
    sandbox:             bool | None = None
    executable_browser:  str | None = None
    proxy_server:        str | None = None
    proxy_bypass:        str | None = None
    proxy_user:          str | None = None
    proxy_pass:          str | None = None
    log_level:           Literal["silent", "info", "verbose", "debug"] | None = None
    ignore_https_errors: bool | None = None

    @field_validator("theme", mode="before")
    @classmethod
    def _widen_theme(cls, v: Any) -> Any:
        return _as_list(v)
