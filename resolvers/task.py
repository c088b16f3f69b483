"""Plan composer: turns a declared project plus inline options into a plan.

Two variants share one context computation and return the same
:class:`~models.resolution.ResolvedTaskConfig` shape:

  project mode       entries come from the project file's ``entry`` list;
                     the viewer loads a manifest generated in the workspace.
  single-input mode  one ad hoc file or URL given on the command line; the
                     viewer input depends on the input's format (markdown,
                     webbook, pub-manifest, epub, epub-opf).

Usage::

    plan = resolve_task_config(build_task, InlineOptions(cwd="/book"))
"""

import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

from app.constants import (
    CONTAINER_IMAGE,
    COVER_HTML_FILENAME,
    COVER_HTML_IMAGE_ALT,
    DEFAULT_ASSET_EXTENSIONS,
    DEFAULT_BASE,
    DEFAULT_SERVER_PORT,
    DEFAULT_TIMEOUT_MS,
    MANIFEST_FILENAME,
    THEMES_DIRNAME,
    TOC_FILENAME,
    TOC_TITLE,
    WORKSPACE_DIRNAME,
)
from app.loader import find_project_file, load_project_file, read_package_metadata
from app.models.publication_config import (
    BuildTask,
    CopyAssetConfig,
    InlineOptions,
    InputFormat,
    TocConfig,
)
from app.utils.logging import get_logger
from models.resolution import (
    ContentsEntry,
    CopyAssetRules,
    CoverEntry,
    CoverSettings,
    EpubInput,
    EpubOpfInput,
    ExportAlias,
    FileEntrySource,
    InputDescriptor,
    ManuscriptEntry,
    PageSize,
    ProxySettings,
    ResolvedTaskConfig,
    ServerSettings,
    VfmOptions,
    WebBookInput,
    WebPublicationManifestInput,
)
from resolvers.entries import (
    EntryContext,
    EntryResolver,
    TocSettings,
    first_set,
    local_origin,
)
from resolvers.errors import (
    ConfigError,
    MissingInputError,
    UnreachableInputFormatError,
)
from resolvers.metadata import parse_file_metadata
from resolvers.outputs import normalize_outputs
from resolvers.overrides import apply_inline_overrides, resolve_input_spec
from resolvers.paths import (
    basename,
    is_http_uri,
    is_valid_uri,
    new_temporary_prefix,
    resolve_path,
    to_html_name,
)
from resolvers.placeholder import stage_with_alias, staging_path, touch_placeholder
from resolvers.theme import ThemeIndex, parse_themes

logger = get_logger("resolvers.task")


def parse_page_size(size: str) -> PageSize:
    """``"A4"`` → named format; ``"182mm,257mm"`` → explicit width/height."""
    width, *rest = str(size).split(",")
    if not width or len(rest) > 1:
        raise ConfigError(f"ERROR: Cannot parse size: {size}")
    if rest and rest[0]:
        return PageSize(width=width, height=rest[0])
    return PageSize(format=width)


def _style_url(style: str | None, context: str) -> str | None:
    if not style:
        return None
    if is_valid_uri(style):
        return style
    return Path(resolve_path(context, style)).as_uri()


def _copy_asset_rules(task: BuildTask) -> CopyAssetRules:
    cfg = task.copy_asset or CopyAssetConfig()
    excluded = set(cfg.exclude_file_extensions or [])
    extensions: list[str] = []
    for ext in [*DEFAULT_ASSET_EXTENSIONS, *(cfg.include_file_extensions or [])]:
        if ext not in extensions and ext not in excluded:
            extensions.append(ext)
    return CopyAssetRules(
        includes=list(first_set(cfg.includes, task.include_assets, [])),
        excludes=list(cfg.excludes or []),
        file_extensions=extensions,
    )


def _proxy_settings(options: InlineOptions) -> ProxySettings | None:
    server = options.proxy_server or os.environ.get("HTTP_PROXY")
    if not server:
        return None
    return ProxySettings(
        server=server,
        bypass=options.proxy_bypass or os.environ.get("NOPROXY"),
        username=options.proxy_user,
        password=options.proxy_pass,
    )


def _cover_settings(
    task: BuildTask, entry_context_dir: str, workspace_dir: str
) -> CoverSettings | None:
    if task.cover is None:
        return None
    html_path = task.cover.html_path
    disabled = "html_path" in task.cover.model_fields_set and not html_path
    return CoverSettings(
        src=resolve_path(entry_context_dir, task.cover.src),
        name=task.cover.name or COVER_HTML_IMAGE_ALT,
        html_path=(
            None if disabled else resolve_path(workspace_dir, html_path or COVER_HTML_FILENAME)
        ),
    )


def _normalize_webbook_url(source: str) -> str:
    """File paths become file URLs; http(s) URLs get a trailing slash unless
    they already end in one or in an explicit ``.htm(l)`` document."""
    if not is_valid_uri(source):
        return Path(source).as_uri()
    if not is_http_uri(source):
        return source
    parsed = urlparse(source)
    path = parsed.path or "/"
    if not path.endswith("/") and not path.endswith((".html", ".htm")):
        path = f"{path}/"
    return urlunparse(parsed._replace(path=path))


class TaskConfigResolver:
    """Resolve one :class:`BuildTask` into a :class:`ResolvedTaskConfig`.

    Args:
        task:     The declared project (already merged with CLI overrides).
        options:  Inline options; ``options.input`` selects single-input mode.

    A resolver instance performs exactly one resolution; the theme index and
    alias list it accumulates are not shared with other instances.
    """

    def __init__(self, task: BuildTask, options: InlineOptions) -> None:
        self.task = task
        self.options = options
        self.theme_index = ThemeIndex()
        self.export_aliases: list[ExportAlias] = []

        self.context = os.path.abspath(options.cwd or os.getcwd())
        self.entry_context_dir = (
            resolve_path(self.context, task.entry_context)
            if task.entry_context
            else self.context
        )
        self.workspace_dir = resolve_path(self.context, task.workspace_dir or WORKSPACE_DIRNAME)
        self.themes_dir = os.path.join(self.workspace_dir, THEMES_DIRNAME)
        self.temporary_file_prefix = task.temporary_file_prefix or new_temporary_prefix()

        logger.debug("context_directory", context=self.context)
        logger.debug(
            "inline_options",
            options=options.model_dump(exclude_none=True, exclude={"proxy_pass"}),
        )

        self.root_themes = self.theme_index.update(
            parse_themes(task.theme or [], self.context, self.workspace_dir, self.themes_dir)
        )
        self.outputs = normalize_outputs(
            task.output, self.context, task.title, press_ready=bool(task.press_ready)
        )
        self.cover = _cover_settings(task, self.entry_context_dir, self.workspace_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self) -> ResolvedTaskConfig:
        if self.options.input is not None:
            plan = self._compose_single_input()
        else:
            plan = self._compose_project()
        logger.debug(
            "resolved_config",
            plan=plan.model_dump(mode="json", exclude={"proxy": {"password"}}),
        )
        return plan

    # ------------------------------------------------------------------
    # Shared context
    # ------------------------------------------------------------------

    def _common(self) -> dict[str, Any]:
        task, options = self.task, self.options
        vfm = task.vfm.model_dump(exclude_none=True) if task.vfm else {}
        server = task.server
        return {
            "context": self.context,
            "entry_context_dir": self.entry_context_dir,
            "workspace_dir": self.workspace_dir,
            "themes_dir": self.themes_dir,
            "outputs": self.outputs,
            "theme_indexes": self.theme_index.as_list(),
            "root_themes": self.root_themes,
            "copy_asset": _copy_asset_rules(task),
            "export_aliases": self.export_aliases,
            "temporary_file_prefix": self.temporary_file_prefix,
            "size": parse_page_size(task.size) if task.size else None,
            "crop_marks": bool(options.crop_marks),
            "bleed": options.bleed,
            "crop_offset": options.crop_offset,
            "css": options.css,
            "custom_style": _style_url(options.style, self.context),
            "custom_user_style": _style_url(options.user_style, self.context),
            "single_doc": bool(options.single_doc),
            "quick": bool(options.quick),
            "language": task.language,
            "reading_progression": task.reading_progression,
            "vfm_options": VfmOptions(**vfm),
            "cover": self.cover,
            "timeout": first_set(task.timeout, DEFAULT_TIMEOUT_MS),
            "sandbox": bool(options.sandbox),
            "executable_browser": options.executable_browser,
            "browser_type": task.browser.value if task.browser else "chromium",
            "proxy": _proxy_settings(options),
            "image": task.image or CONTAINER_IMAGE,
            "viewer": task.viewer,
            "viewer_param": task.viewer_param,
            "log_level": options.log_level or "silent",
            "ignore_https_errors": bool(options.ignore_https_errors),
            "base": task.base or DEFAULT_BASE,
            "server": ServerSettings(
                host=first_set(server.host if server else None, False),
                port=first_set(server.port if server else None, DEFAULT_SERVER_PORT),
            ),
            "vite": task.vite,
            "vite_config_file": first_set(task.vite_config_file, True),
        }

    def _toc_settings(self) -> TocSettings:
        toc = self.task.toc or TocConfig()
        return TocSettings(
            toc_title=first_set(toc.title, self.task.toc_title, TOC_TITLE),
            target=resolve_path(self.workspace_dir, toc.html_path or TOC_FILENAME),
            section_depth=first_set(toc.section_depth, 0),
            transform_document_list=toc.transform_document_list,
            transform_section_list=toc.transform_section_list,
        )

    # ------------------------------------------------------------------
    # Single-input mode
    # ------------------------------------------------------------------

    def _compose_single_input(self) -> ResolvedTaskConfig:
        logger.debug("single_input_mode")
        spec = self.options.input
        input_format = spec.format
        entries: list[ManuscriptEntry] = []
        fallback_title: str | None = None

        if is_valid_uri(spec.entry):
            source_path = spec.entry
        else:
            source_path = resolve_path(self.entry_context_dir, spec.entry)
            if not os.path.isfile(source_path):
                raise MissingInputError(
                    f"ERROR: Specified input does not exist: {source_path}"
                )

        if input_format == InputFormat.MARKDOWN:
            content_type = "text/markdown"
            metadata = parse_file_metadata(content_type, source_path, self.workspace_dir)
            rel_dir = os.path.relpath(os.path.dirname(source_path), self.entry_context_dir)
            canonical = resolve_path(
                self.workspace_dir, rel_dir, to_html_name(os.path.basename(source_path))
            )
            target = stage_with_alias(canonical, self.temporary_file_prefix, self.export_aliases)
            themes = self.theme_index.update(first_set(metadata.themes, list(self.root_themes)))
            entries.append(
                ManuscriptEntry(
                    content_type=content_type,
                    source=FileEntrySource(pathname=source_path, content_type=content_type),
                    target=target,
                    title=metadata.title,
                    themes=themes,
                )
            )

            manifest_target = os.path.join(self.workspace_dir, MANIFEST_FILENAME)
            manifest_path = staging_path(manifest_target, self.temporary_file_prefix)
            touch_placeholder(manifest_path)
            self.export_aliases.append(ExportAlias(source=manifest_path, target=manifest_target))
            fallback_title = first_set(
                (entries[0].title or None) if len(entries) == 1 else None, basename(source_path)
            )
            viewer_input = WebPublicationManifestInput(
                manifest_path=manifest_path, need_to_generate_manifest=True
            )
        elif input_format == InputFormat.WEBBOOK:
            viewer_input = WebBookInput(webbook_entry_url=_normalize_webbook_url(source_path))
        elif input_format == InputFormat.PUB_MANIFEST:
            viewer_input = WebPublicationManifestInput(
                manifest_path=source_path, need_to_generate_manifest=False
            )
        elif input_format == InputFormat.EPUB_OPF:
            viewer_input = EpubOpfInput(epub_opf_path=source_path)
        elif input_format == InputFormat.EPUB:
            viewer_input = EpubInput(
                epub_path=source_path,
                epub_tmp_output_dir=staging_path(source_path, self.temporary_file_prefix),
            )
        else:
            raise UnreachableInputFormatError(
                f"ERROR: unsupported input format: {input_format}"
            )

        return ResolvedTaskConfig(
            **self._common(),
            entries=entries,
            input=InputDescriptor(format=input_format.value, entry=source_path),
            viewer_input=viewer_input,
            title=self.task.title or fallback_title,
            author=self.task.author,
        )

    # ------------------------------------------------------------------
    # Project mode
    # ------------------------------------------------------------------

    def _compose_project(self) -> ResolvedTaskConfig:
        logger.debug("project_mode")
        task = self.task
        pkg = read_package_metadata(self.entry_context_dir) or {}
        project_title = first_set(task.title, pkg.get("name"))
        project_author = first_set(task.author, pkg.get("author"))

        server = task.server
        toc = self._toc_settings()
        resolver = EntryResolver(
            EntryContext(
                context=self.context,
                entry_context_dir=self.entry_context_dir,
                workspace_dir=self.workspace_dir,
                themes_dir=self.themes_dir,
                temporary_file_prefix=self.temporary_file_prefix,
                local_origin=local_origin(
                    server.host if server else None,
                    first_set(server.port if server else None, DEFAULT_SERVER_PORT),
                ),
                root_themes=self.root_themes,
                project_title=project_title,
                toc=toc,
                cover=self.cover,
            ),
            self.theme_index,
            self.export_aliases,
        )
        entries = [resolver.resolve(entry) for entry in task.entry]

        fallback_title = None
        if not project_title:
            fallback_title = first_set(
                (entries[0].title or None) if len(entries) == 1 else None,
                os.path.basename(self.outputs[0].path),
            )

        # Implicit pages are unshifted: the cover ends up before the contents.
        if task.toc is not None and not any(e.kind == "contents" for e in entries):
            entries.insert(
                0,
                ContentsEntry(
                    target=toc.target,
                    toc_title=toc.toc_title,
                    section_depth=toc.section_depth,
                    transform=toc.transform(),
                    themes=list(self.root_themes),
                ),
            )
        if self.cover and self.cover.html_path and not any(e.kind == "cover" for e in entries):
            entries.insert(
                0,
                CoverEntry(
                    target=self.cover.html_path,
                    title=project_title,
                    themes=[],
                    cover_image_src=resolver.ensure_cover_image(self.cover.src),
                    cover_image_alt=self.cover.name,
                ),
            )

        manifest_path = os.path.join(self.workspace_dir, MANIFEST_FILENAME)
        return ResolvedTaskConfig(
            **self._common(),
            entries=entries,
            input=InputDescriptor(format=InputFormat.PUB_MANIFEST.value, entry=manifest_path),
            viewer_input=WebPublicationManifestInput(
                manifest_path=manifest_path, need_to_generate_manifest=True
            ),
            title=project_title or fallback_title,
            author=project_author,
        )


def resolve_task_config(task: BuildTask, options: InlineOptions) -> ResolvedTaskConfig:
    """Resolve *task* under *options* into a build plan."""
    return TaskConfigResolver(task, options).resolve()


def load_and_resolve(options: InlineOptions) -> ResolvedTaskConfig:
    """Locate and load the project file, apply CLI overrides, and resolve.

    The project file is ``options.config`` when given, else the first
    ``bookplan.config.*`` file in the working directory; when neither exists
    an empty project is used.  Without an explicit ``cwd`` the project file's
    directory becomes the context directory.
    """
    options = resolve_input_spec(options)
    cwd = os.path.abspath(options.cwd or os.getcwd())
    config_path = (
        resolve_path(cwd, options.config) if options.config else find_project_file(cwd)
    )
    if config_path:
        task = load_project_file(config_path)
        if not options.cwd:
            options = options.model_copy(update={"cwd": os.path.dirname(config_path)})
    else:
        task = BuildTask()
    return resolve_task_config(apply_inline_overrides(task, options), options)
