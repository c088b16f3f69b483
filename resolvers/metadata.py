"""Lightweight manuscript metadata extraction.

Recovers an implicit title and theme overrides without running the document
transformer:
  - Markdown: the YAML front-matter block only (``title``, ``vfm.theme``).
  - HTML/XHTML: the first ``<title>`` element, found by a regex scan.

Missing or malformed metadata is never an error.
"""

import mimetypes
import os
import re

import yaml
from pydantic import BaseModel

from app.utils.logging import get_logger
from resolvers.theme import ResolvedTheme, parse_theme

logger = get_logger("resolvers.metadata")

_TITLE_RE = re.compile(r"<title>([^<]*)</title>")
_FRONT_MATTER_FENCE = "---"

# Manuscript extensions are mapped explicitly; everything else is left to
# the platform mimetypes table.
_EXT_TO_MEDIA_TYPE: dict[str, str] = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".xhtml": "application/xhtml+xml",
}


class FileMetadata(BaseModel):
    title: str | None = None
    themes: list[ResolvedTheme] | None = None


def detect_media_type(path: str) -> str | None:
    """Return the media type implied by *path*'s extension, or None."""
    ext = os.path.splitext(path)[1].lower()
    if ext in _EXT_TO_MEDIA_TYPE:
        return _EXT_TO_MEDIA_TYPE[ext]
    media_type, _ = mimetypes.guess_type(path, strict=False)
    return media_type


def read_front_matter(path: str) -> dict:
    """Parse the leading ``---`` fenced YAML block of a markdown file."""
    with open(path, encoding="utf-8", errors="replace") as f:
        first = f.readline()
        if first.strip() != _FRONT_MATTER_FENCE:
            return {}
        lines: list[str] = []
        for line in f:
            if line.rstrip() in (_FRONT_MATTER_FENCE, "..."):
                break
            lines.append(line)
        else:
            return {}
    try:
        data = yaml.safe_load("".join(lines))
    except yaml.YAMLError as exc:
        logger.debug("front_matter_unparsable", path=path, error=str(exc))
        return {}
    return data if isinstance(data, dict) else {}


def parse_file_metadata(
    content_type: str,
    source_path: str,
    workspace_dir: str,
    themes_dir: str | None = None,
) -> FileMetadata:
    """Extract the title and theme overrides declared inside a manuscript.

    Theme overrides are resolved relative to the manuscript's own directory,
    and only when *themes_dir* is given.
    """
    if content_type == "text/markdown":
        meta = read_front_matter(source_path)
        title = meta.get("title")
        themes = None
        vfm = meta.get("vfm")
        declared = vfm.get("theme") if isinstance(vfm, dict) else None
        if declared and themes_dir:
            refs = declared if isinstance(declared, list) else [declared]
            themes = [
                parse_theme(
                    ref,
                    context=os.path.dirname(source_path),
                    workspace_dir=workspace_dir,
                    themes_dir=themes_dir,
                )
                for ref in refs
                if ref and isinstance(ref, (str, dict))
            ]
        return FileMetadata(
            title=str(title) if title is not None else None,
            themes=themes,
        )

    with open(source_path, encoding="utf-8", errors="replace") as f:
        content = f.read()
    match = _TITLE_RE.search(content)
    return FileMetadata(title=(match.group(1) if match else None) or None)
