"""Project file discovery and loading.

Project files are JSON or YAML (``bookplan.config.json``/``.yaml``/``.yml``);
both are checked against ``PublicationConfig.v1.json`` before being parsed
into a :class:`BuildTask`.
"""

import json
import os
from pathlib import Path

import jsonschema
import pydantic
import yaml

from app.constants import PROJECT_FILENAMES
from app.models.publication_config import BuildTask
from app.utils.logging import get_logger
from resolvers.errors import ProjectFileError

logger = get_logger("app.loader")

_CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"
_SCHEMA_PROJECT = json.loads(
    (_CONTRACTS_DIR / "PublicationConfig.v1.json").read_text(encoding="utf-8")
)


def find_project_file(directory: str) -> str | None:
    """Return the first project file present in *directory*, or None."""
    for name in PROJECT_FILENAMES:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return candidate
    return None


def _read_document(path: str) -> object:
    with open(path, encoding="utf-8") as f:
        if path.endswith((".yaml", ".yml")):
            return yaml.safe_load(f)
        return json.load(f)


def load_project_file(path: str) -> BuildTask:
    """Load, validate and parse the project file at *path*.

    Raises:
        ProjectFileError: The file is missing, unparsable, or does not
            conform to the project contract.
    """
    if not os.path.isfile(path):
        raise ProjectFileError(f"ERROR: project file not found: {path}")
    try:
        document = _read_document(path)
    except (json.JSONDecodeError, yaml.YAMLError, OSError) as exc:
        raise ProjectFileError(f"ERROR: failed to load {path}: {exc}") from exc

    try:
        jsonschema.validate(instance=document, schema=_SCHEMA_PROJECT)
    except jsonschema.ValidationError as exc:
        raise ProjectFileError(
            f"ERROR: project file does not conform to PublicationConfig.v1.json: "
            f"{exc.message}"
        ) from exc

    try:
        task = BuildTask.model_validate(document)
    except pydantic.ValidationError as exc:
        raise ProjectFileError(f"ERROR: invalid project file {path}: {exc}") from exc
    logger.debug("project_file_loaded", path=path, entries=len(task.entry))
    return task


def read_package_metadata(directory: str) -> dict | None:
    """Read ``name`` and ``author`` from *directory*/package.json if present.

    ``author`` may be declared as a string or as ``{"name": ...}``; it is
    returned as a plain string either way.
    """
    pkg_json = os.path.join(directory, "package.json")
    if not os.path.isfile(pkg_json):
        return None
    try:
        with open(pkg_json, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        logger.warning("package_json_unparsable", path=pkg_json, error=str(exc))
        return None
    if not isinstance(data, dict):
        return None
    author = data.get("author")
    if isinstance(author, dict):
        author = author.get("name")
    return {
        "name": data.get("name") if isinstance(data.get("name"), str) else None,
        "author": author if isinstance(author, str) else None,
    }
