"""Theme package specifier parsing and source policy.

Only two kinds of package source may be installed as a theme:
  - a package from the public registry (``name``, ``name@1.2``, ``@scope/name@^2``,
    ``alias@npm:name``);
  - a local directory (``./themes/my-theme``, ``file:../shared-theme``).

Git URLs, hosted-repo shorthands (``user/repo``), remote tarballs and local
tarballs are rejected.
"""

import os
import re
from typing import Literal

from pydantic import BaseModel

from app.utils.logging import get_logger
from resolvers.errors import InvalidThemeSpecifierError

logger = get_logger("policy.specifier_validator")

SpecifierType = Literal[
    "version", "range", "tag", "alias", "directory", "file", "git", "remote"
]

# Specifier types that may be handed to the theme installer.
ALLOWED_SPECIFIER_TYPES: frozenset[str] = frozenset(
    {"version", "range", "tag", "alias", "directory"}
)

_MAX_NAME_LENGTH = 214
_NAME_RE = re.compile(r"^(?:@[a-z0-9~-][a-z0-9._~-]*/)?[a-z0-9~-][a-z0-9._~-]*$", re.IGNORECASE)
_EXACT_VERSION_RE = re.compile(r"^v?\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$")
_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")
_TARBALL_RE = re.compile(r"\.(?:tgz|tar\.gz|tar)$", re.IGNORECASE)
_WINDOWS_PATH_RE = re.compile(r"^[A-Za-z]:[\\/]")
_GIT_RE = re.compile(r"^(?:git\+|git:|github:|gitlab:|bitbucket:|gist:)|\.git(?:#.*)?$", re.IGNORECASE)
_HOSTED_SHORTHAND_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+(?:#.*)?$")


class PackageSpecifier(BaseModel):
    """A parsed package specifier."""

    raw: str
    type: SpecifierType
    name: str | None = None
    fetch_spec: str | None = None
    """Version range/tag for registry specifiers, absolute path for local ones."""

    registry: bool = False


def _is_local_path(spec: str) -> bool:
    return (
        spec.startswith((".", "/", "~", "file:"))
        or bool(_WINDOWS_PATH_RE.match(spec))
    )


def _parse_local(spec: str, cwd: str) -> PackageSpecifier:
    path = spec[len("file:"):] if spec.startswith("file:") else spec
    path = os.path.expanduser(path)
    fetch_spec = os.path.abspath(os.path.join(cwd, path))
    kind = "file" if _TARBALL_RE.search(path) else "directory"
    return PackageSpecifier(raw=spec, type=kind, fetch_spec=fetch_spec)


def _is_valid_name(name: str) -> bool:
    if not name or len(name) > _MAX_NAME_LENGTH:
        return False
    bare = name.split("/", 1)[-1]
    if bare.startswith((".", "_")):
        return False
    return bool(_NAME_RE.match(name))


def _split_name_and_spec(spec: str) -> tuple[str, str]:
    """Split ``@scope/name@range`` into ``("@scope/name", "range")``."""
    offset = 1 if spec.startswith("@") else 0
    at = spec.find("@", offset)
    if at == -1:
        return spec, ""
    return spec[:at], spec[at + 1:]


def parse_package_specifier(spec: str, cwd: str) -> PackageSpecifier | None:
    """Parse *spec* the way a node-style package installer would.

    Returns ``None`` when *spec* is not a well-formed specifier.
    """
    spec = spec.strip()
    if not spec:
        return None
    if _is_local_path(spec):
        return _parse_local(spec, cwd)
    if re.match(r"^https?://", spec, re.IGNORECASE):
        return PackageSpecifier(raw=spec, type="remote", fetch_spec=spec)
    if _GIT_RE.search(spec) or (
        not spec.startswith("@") and _HOSTED_SHORTHAND_RE.match(spec)
    ):
        return PackageSpecifier(raw=spec, type="git", fetch_spec=spec)

    name, version_spec = _split_name_and_spec(spec)
    if not _is_valid_name(name):
        return None

    if version_spec.startswith("npm:"):
        target = parse_package_specifier(version_spec[len("npm:"):], cwd)
        if target is None or not target.registry:
            return None
        return PackageSpecifier(
            raw=spec, type="alias", name=name, fetch_spec=target.fetch_spec, registry=True
        )
    if _is_local_path(version_spec):
        local = _parse_local(version_spec, cwd)
        return local.model_copy(update={"raw": spec, "name": name})
    if _GIT_RE.search(version_spec) or re.match(r"^https?://", version_spec, re.IGNORECASE):
        return PackageSpecifier(raw=spec, type="git", name=name, fetch_spec=version_spec)

    if not version_spec or version_spec == "*":
        kind, fetch_spec = "tag", "latest"
    elif _EXACT_VERSION_RE.match(version_spec):
        kind, fetch_spec = "version", version_spec.lstrip("v")
    elif _TAG_RE.match(version_spec):
        kind, fetch_spec = "tag", version_spec
    else:
        kind, fetch_spec = "range", version_spec
    return PackageSpecifier(
        raw=spec, type=kind, name=name, fetch_spec=fetch_spec, registry=True
    )


class SpecifierValidator:
    """Parses theme package specifiers and enforces the allowed-source policy."""

    allowed: frozenset[str] = ALLOWED_SPECIFIER_TYPES

    def validate(self, specifier: str, cwd: str) -> PackageSpecifier:
        """Parse *specifier* relative to *cwd* and check it against the policy.

        Raises:
            InvalidThemeSpecifierError: If *specifier* cannot be parsed, or if
                it names a source other than the registry or a local directory.
        """
        parsed = parse_package_specifier(specifier, cwd)
        if parsed is None:
            raise InvalidThemeSpecifierError(f"ERROR: invalid package name: {specifier}")
        if parsed.type not in self.allowed:
            logger.warning(
                "theme_specifier_rejected",
                specifier=specifier,
                specifier_type=parsed.type,
                allowed=sorted(self.allowed),
            )
            raise InvalidThemeSpecifierError(
                f"ERROR: this package specifier is not allowed: {specifier}"
            )
        return parsed
