"""Entry classification for project-mode plans.

Each declared entry becomes exactly one of:
  - ManuscriptEntry  (any entry that is not contents/cover; input mandatory)
  - ContentsEntry    (``rel: contents``; table of contents page)
  - CoverEntry       (``rel: cover``; cover page, never inherits root themes)

Every resolved theme is folded into the shared :class:`ThemeIndex`, and any
entry whose target would overwrite its own file source is re-targeted to a
staged sibling with an export alias.
"""

import os
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.constants import COVER_HTML_FILENAME, COVER_HTML_IMAGE_ALT, LOCAL_MIRROR_DIRNAME
from app.models.publication_config import (
    ArticleEntryObject,
    ContentsEntryObject,
    CoverEntryObject,
    EntryObject,
)
from app.utils.logging import get_logger
from models.resolution import (
    ContentsEntry,
    CoverEntry,
    CoverSettings,
    ExportAlias,
    FileEntrySource,
    ManuscriptEntry,
    MANUSCRIPT_MEDIA_TYPES,
    TocTransform,
    UriEntrySource,
)
from resolvers.errors import (
    MissingCoverImageError,
    UnreachableInputFormatError,
    UnrecognizedManuscriptTypeError,
)
from resolvers.metadata import FileMetadata, detect_media_type, parse_file_metadata
from resolvers.paths import (
    ensure_file,
    is_http_uri,
    path_equals,
    resolve_path,
    target_path,
    uri_root_dir,
)
from resolvers.placeholder import stage_with_alias
from resolvers.theme import ResolvedTheme, ThemeIndex, parse_themes

logger = get_logger("resolvers.entries")

T = TypeVar("T")

ResolvedEntry = ManuscriptEntry | ContentsEntry | CoverEntry


def first_set(*candidates: T | None) -> T | None:
    """Return the first candidate that is not None (ordered fallback chain)."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class TocSettings(BaseModel):
    """Project-wide table-of-contents parameters."""

    toc_title: str
    target: str
    section_depth: int = 0
    transform_document_list: Callable[..., Any] | None = None
    transform_section_list: Callable[..., Any] | None = None

    def transform(self) -> TocTransform:
        return TocTransform(
            transform_document_list=self.transform_document_list,
            transform_section_list=self.transform_section_list,
        )


class EntryContext(BaseModel):
    """Everything the classifier needs besides the entry itself."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    context: str
    entry_context_dir: str
    workspace_dir: str
    themes_dir: str
    temporary_file_prefix: str
    local_origin: str
    root_themes: list[Any] = Field(default_factory=list)
    project_title: str | None = None
    toc: TocSettings
    cover: CoverSettings | None = None


class ResolvedInput(BaseModel):
    """An entry's input location plus its extracted metadata (file inputs only)."""

    source: FileEntrySource | UriEntrySource
    metadata: FileMetadata | None = None


class EntryResolver:
    """Classify declared entries into parsed entries.

    Usage::

        resolver = EntryResolver(ctx, theme_index, export_aliases)
        entries = [resolver.resolve(e) for e in task.entry]

    *theme_index* and *export_aliases* are accumulators owned by the calling
    composer and are appended to in place.
    """

    def __init__(
        self,
        ctx: EntryContext,
        theme_index: ThemeIndex,
        export_aliases: list[ExportAlias],
    ) -> None:
        self.ctx = ctx
        self.theme_index = theme_index
        self.export_aliases = export_aliases

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, entry: EntryObject) -> ResolvedEntry:
        """Resolve one declared entry, dispatching on its role."""
        if isinstance(entry, (ContentsEntryObject, CoverEntryObject)) and entry.path:
            entry = self._reinterpret_missing_path(entry)

        if isinstance(entry, ContentsEntryObject):
            return self._resolve_contents(entry)
        if isinstance(entry, CoverEntryObject):
            return self._resolve_cover(entry)
        if isinstance(entry, ArticleEntryObject):
            return self._resolve_manuscript(entry)
        raise UnreachableInputFormatError(
            f"ERROR: unknown entry type: {type(entry).__name__}"
        )

    def ensure_cover_image(self, src: str | None) -> str | None:
        """Resolve *src* against the entry context and require it to exist."""
        if not src:
            return None
        return ensure_file(
            resolve_path(self.ctx.entry_context_dir, src),
            "Specified cover image does not exist",
        )

    # ------------------------------------------------------------------
    # Per-role resolution
    # ------------------------------------------------------------------

    def _resolve_contents(self, entry: ContentsEntryObject) -> ContentsEntry:
        resolved = self._resolve_input(entry.path) if entry.path else None
        metadata = resolved.metadata if resolved else None
        themes = self._entry_themes(
            entry.theme,
            metadata.themes if metadata else None,
            list(self.ctx.root_themes),
        )
        target = first_set(
            self._output_override(entry.output),
            self._target_of(resolved) if resolved else None,
            self.ctx.toc.target,
        )
        target = self._avoid_self_overwrite(resolved, target)
        toc = self.ctx.toc
        return ContentsEntry(
            title=first_set(entry.title, metadata.title if metadata else None, self.ctx.project_title),
            themes=themes,
            template=resolved.source if resolved else None,
            target=target,
            toc_title=toc.toc_title,
            section_depth=toc.section_depth,
            transform=toc.transform(),
            page_break_before=entry.page_break_before,
            page_counter_reset=entry.page_counter_reset,
        )

    def _resolve_cover(self, entry: CoverEntryObject) -> CoverEntry:
        resolved = self._resolve_input(entry.path) if entry.path else None
        metadata = resolved.metadata if resolved else None
        # Cover pages never inherit the root themes.
        themes = self._entry_themes(
            entry.theme, metadata.themes if metadata else None, []
        )
        cover = self.ctx.cover
        cover_image_src = self.ensure_cover_image(
            entry.image_src or (cover.src if cover else None)
        )
        if not cover_image_src:
            raise MissingCoverImageError(
                "ERROR: A cover entry is set in the entry list but a location of "
                "cover file is not set. Please set 'cover' property in your config file."
            )
        target = first_set(
            self._output_override(entry.output),
            self._target_of(resolved) if resolved else None,
            resolve_path(
                self.ctx.workspace_dir,
                entry.path or (cover.html_path if cover else None) or COVER_HTML_FILENAME,
            ),
        )
        target = self._avoid_self_overwrite(resolved, target)
        return CoverEntry(
            title=first_set(entry.title, metadata.title if metadata else None, self.ctx.project_title),
            themes=themes,
            template=resolved.source if resolved else None,
            target=target,
            cover_image_src=cover_image_src,
            cover_image_alt=entry.image_alt or (cover.name if cover else None) or COVER_HTML_IMAGE_ALT,
            page_break_before=entry.page_break_before,
        )

    def _resolve_manuscript(self, entry: ArticleEntryObject) -> ManuscriptEntry:
        resolved = self._resolve_input(entry.path)
        metadata = resolved.metadata
        source = resolved.source
        themes = self._entry_themes(
            entry.theme,
            metadata.themes if metadata else None,
            list(self.ctx.root_themes),
        )
        target = first_set(self._output_override(entry.output), self._target_of(resolved))
        target = self._avoid_self_overwrite(resolved, target)
        return ManuscriptEntry(
            content_type=(
                source.content_type if isinstance(source, FileEntrySource) else "text/html"
            ),
            source=source,
            target=target,
            title=first_set(entry.title, metadata.title if metadata else None, self.ctx.project_title),
            themes=themes,
            rel=entry.rel,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reinterpret_missing_path(
        self, entry: ContentsEntryObject | CoverEntryObject
    ) -> ContentsEntryObject | CoverEntryObject:
        """Treat a dangling ``path`` on contents/cover entries as ``output``."""
        source = resolve_path(self.ctx.entry_context_dir, entry.path)
        if os.path.isfile(source):
            return entry
        logger.warning(
            "entry_path_missing",
            path=source,
            hint='The "path" option is set but the file does not exist. '
                 'Maybe you want to set the "output" field instead.',
        )
        return entry.model_copy(update={"output": entry.path, "path": None})

    def _resolve_input(self, entry_path: str) -> ResolvedInput:
        """Locate an entry's input: remote URL, local preview path, or file."""
        if is_http_uri(entry_path):
            return ResolvedInput(
                source=UriEntrySource(
                    href=entry_path,
                    root_dir=uri_root_dir(entry_path, self.ctx.workspace_dir),
                )
            )
        if entry_path.startswith("/"):
            return ResolvedInput(
                source=UriEntrySource(
                    href=f"{self.ctx.local_origin}{entry_path}",
                    root_dir=os.path.join(self.ctx.workspace_dir, LOCAL_MIRROR_DIRNAME),
                )
            )

        pathname = ensure_file(resolve_path(self.ctx.entry_context_dir, entry_path))
        content_type = detect_media_type(pathname)
        if content_type not in MANUSCRIPT_MEDIA_TYPES:
            raise UnrecognizedManuscriptTypeError(
                f"ERROR: Invalid manuscript type {content_type} detected: {pathname}"
            )
        return ResolvedInput(
            source=FileEntrySource(pathname=pathname, content_type=content_type),
            metadata=parse_file_metadata(
                content_type,
                pathname,
                workspace_dir=self.ctx.workspace_dir,
                themes_dir=self.ctx.themes_dir,
            ),
        )

    def _target_of(self, resolved: ResolvedInput) -> str:
        return target_path(resolved.source, self.ctx.workspace_dir, self.ctx.entry_context_dir)

    def _output_override(self, output: str | None) -> str | None:
        return resolve_path(self.ctx.workspace_dir, output) if output else None

    def _entry_themes(
        self,
        declared: list | None,
        from_metadata: list[ResolvedTheme] | None,
        inherited: list[ResolvedTheme],
    ) -> list[ResolvedTheme]:
        """Explicit override, else metadata themes, else *inherited*; indexed."""
        explicit = (
            parse_themes(
                declared, self.ctx.context, self.ctx.workspace_dir, self.ctx.themes_dir
            )
            if declared
            else None
        )
        themes = first_set(explicit, from_metadata, inherited)
        return self.theme_index.update(themes)

    def _avoid_self_overwrite(self, resolved: ResolvedInput | None, target: str) -> str:
        """Stage *target* aside when it equals the entry's own file source.

        URL sources are skipped: their targets live under the workspace
        mirror root and cannot coincide with a manuscript file.
        """
        if (
            resolved is not None
            and isinstance(resolved.source, FileEntrySource)
            and path_equals(resolved.source.pathname, target)
        ):
            return stage_with_alias(
                target, self.ctx.temporary_file_prefix, self.export_aliases
            )
        return target


def local_origin(host: str | bool | None, port: int) -> str:
    """Origin of the local preview server entries starting with ``/`` resolve to."""
    if not host:
        name = "localhost"
    elif host is True:
        name = "0.0.0.0"
    else:
        name = host
    return f"http://{name}:{port}"
