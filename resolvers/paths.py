"""Path helpers and canonical target-path computation for entries.

Target rules:
  file source  → ``<workspaceDir>/<path relative to entryContextDir>`` with a
                 ``.md``/``.markdown`` suffix rewritten to ``.html``
  uri source   → ``<rootDir>/<url path>``; ``index.html`` is appended when the
                 URL path has no ``.html``/``.htm`` extension
"""

import itertools
import os
import posixpath
import re
import time
from urllib.parse import urlparse

from app.constants import TEMPORARY_PREFIX_STEM
from models.resolution import FileEntrySource, UriEntrySource
from resolvers.errors import MissingFileError, UnreachableInputFormatError

_URI_RE = re.compile(r"^(?:https?|file|data):", re.IGNORECASE)
_HTTP_RE = re.compile(r"^https?:", re.IGNORECASE)
_HTML_EXT_RE = re.compile(r"\.html?$")
_MARKDOWN_EXT_RE = re.compile(r"\.(?:md|markdown)$")

# Distinguishes prefixes generated within the same millisecond.
_PREFIX_SEQUENCE = itertools.count()


def is_valid_uri(value: str) -> bool:
    """Return True when *value* is an absolute URI rather than a filesystem path."""
    return bool(_URI_RE.match(value))


def is_http_uri(value: str) -> bool:
    return bool(_HTTP_RE.match(value))


def path_equals(a: str, b: str) -> bool:
    """Compare two paths the way the host filesystem would."""
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


def resolve_path(base: str, *parts: str) -> str:
    """Join *parts* onto *base* and normalise; absolute parts win."""
    return os.path.normpath(os.path.join(base, *parts))


def to_html_name(path: str) -> str:
    return _MARKDOWN_EXT_RE.sub(".html", path)


def new_temporary_prefix() -> str:
    """Return a run-unique prefix for staged files, e.g. ``.bp-1760680000000-0.``."""
    return f"{TEMPORARY_PREFIX_STEM}{time.time_ns() // 1_000_000}-{next(_PREFIX_SEQUENCE)}."


def ensure_file(path: str, error_message: str = "Specified input does not exist") -> str:
    """Return *path* if it is an existing file, else raise MissingFileError."""
    if not os.path.isfile(path):
        raise MissingFileError(f"ERROR: {error_message}: {path}")
    return path


def target_path(
    source: FileEntrySource | UriEntrySource,
    workspace_dir: str,
    entry_context_dir: str,
) -> str:
    """Compute the canonical output path for *source*."""
    if isinstance(source, FileEntrySource):
        rel = os.path.relpath(source.pathname, entry_context_dir)
        return resolve_path(workspace_dir, to_html_name(rel))
    if isinstance(source, UriEntrySource):
        pathname = urlparse(source.href).path or "/"
        if not _HTML_EXT_RE.search(pathname):
            pathname = f"{pathname.rstrip('/')}/index.html"
        return os.path.normpath(os.path.join(source.root_dir, pathname.lstrip("/")))
    raise UnreachableInputFormatError(
        f"ERROR: unknown entry source type: {type(source).__name__}"
    )


def uri_root_dir(href: str, workspace_dir: str) -> str:
    """Mirror directory for a remote URL: ``<workspaceDir>/<host[:port]>``."""
    return os.path.join(workspace_dir, urlparse(href).netloc)


def basename(value: str) -> str:
    """Last path segment of a path or URL, ignoring a trailing slash."""
    if is_valid_uri(value):
        parsed = urlparse(value)
        segment = posixpath.basename(parsed.path.rstrip("/"))
        return segment or parsed.netloc
    return os.path.basename(value.rstrip("/\\"))
