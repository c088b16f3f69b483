"""Staging placeholders and export aliases.

When an entry's canonical target would overwrite its own source file, the
planner stages the rendered document at a prefixed sibling path instead and
records an :class:`~models.resolution.ExportAlias` so the packager can move
it to the canonical location afterwards.
"""

import os
from pathlib import Path

from app.utils.logging import get_logger
from models.resolution import ExportAlias

logger = get_logger("resolvers.placeholder")


def touch_placeholder(path: str) -> None:
    """Create an empty file at *path* (and its parent directories) if missing."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.touch(exist_ok=True)
    logger.debug("placeholder_touched", path=path)


def staging_path(target: str, temporary_file_prefix: str) -> str:
    """Return the prefixed sibling of *target*."""
    return os.path.join(
        os.path.dirname(target), f"{temporary_file_prefix}{os.path.basename(target)}"
    )


def stage_with_alias(
    target: str,
    temporary_file_prefix: str,
    export_aliases: list[ExportAlias],
) -> str:
    """Stage *target* at a temporary sibling and register the alias.

    Args:
        target:                 Canonical path the content must finally occupy.
        temporary_file_prefix:  Run-unique prefix for the staged file name.
        export_aliases:         Alias list of the plan under construction;
                                the new alias is appended.

    Returns:
        The staged path, to be used as the entry's effective target.
    """
    tmp_path = staging_path(target, temporary_file_prefix)
    export_aliases.append(ExportAlias(source=tmp_path, target=target))
    touch_placeholder(tmp_path)
    return tmp_path
