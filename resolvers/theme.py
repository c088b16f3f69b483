"""Theme reference resolution.

Classification order (first match wins):
  1. absolute URI                       → UriTheme
  2. existing local ``.css`` file       → FileTheme, copied into the workspace
  3. registry package or local package  → PackageTheme under the themes store

Resolved themes are accumulated per resolution call in a :class:`ThemeIndex`,
which treats two references with the same location as one theme.
"""

import json
import os
from collections.abc import Iterable, Iterator

import pydantic

from app.constants import PACKAGE_STORE_DIRNAME
from app.models.publication_config import ThemeObject, ThemeReference
from app.utils.logging import get_logger
from models.resolution import FileTheme, PackageTheme, UriTheme
from policy.specifier_validator import SpecifierValidator
from resolvers.errors import InvalidThemeSpecifierError
from resolvers.paths import basename, is_valid_uri

logger = get_logger("resolvers.theme")

ResolvedTheme = UriTheme | FileTheme | PackageTheme

_validator = SpecifierValidator()


def _read_package_name(directory: str) -> str | None:
    pkg_json = os.path.join(directory, "package.json")
    if not os.path.isfile(pkg_json):
        return None
    with open(pkg_json, encoding="utf-8") as f:
        data = json.load(f)
    name = data.get("name") if isinstance(data, dict) else None
    return name if isinstance(name, str) and name else None


def parse_theme(
    theme: ThemeReference | dict,
    context: str,
    workspace_dir: str,
    themes_dir: str,
) -> ResolvedTheme:
    """Resolve a single theme reference.

    Args:
        theme:          Bare specifier string or ``{specifier, import}`` object.
        context:        Directory relative paths are resolved against.
        workspace_dir:  Destination root for copied CSS files.
        themes_dir:     Root of the theme package store.

    Raises:
        InvalidThemeSpecifierError: When the reference is neither a URI, an
            existing CSS file, nor an allowed package specifier.
    """
    if isinstance(theme, dict):
        try:
            theme = ThemeObject.model_validate(theme)
        except pydantic.ValidationError as exc:
            raise InvalidThemeSpecifierError(f"ERROR: invalid theme object: {theme}") from exc
    if isinstance(theme, ThemeObject):
        specifier, import_path = theme.specifier, theme.import_path
    else:
        specifier, import_path = theme, None

    # 1. URL
    if is_valid_uri(specifier):
        return UriTheme(name=basename(specifier), location=specifier)

    # 2. Bare .css file
    style_path = os.path.normpath(os.path.join(context, specifier))
    if style_path.endswith(".css") and os.path.isfile(style_path):
        return FileTheme(
            name=os.path.basename(specifier),
            source=style_path,
            location=os.path.normpath(
                os.path.join(workspace_dir, os.path.relpath(style_path, context))
            ),
        )

    # 3. Registry package or local package directory
    parsed = _validator.validate(specifier, context)
    name = parsed.name
    resolved_specifier = specifier
    if parsed.type == "directory" and parsed.fetch_spec:
        pkg_name = _read_package_name(parsed.fetch_spec)
        if pkg_name:
            name = pkg_name
            resolved_specifier = parsed.fetch_spec
    if not name:
        raise InvalidThemeSpecifierError(
            f"ERROR: could not determine the package name: {specifier}"
        )
    return PackageTheme(
        name=name,
        specifier=resolved_specifier,
        location=os.path.join(themes_dir, PACKAGE_STORE_DIRNAME, name),
        import_path=import_path,
    )


def parse_themes(
    themes: Iterable[ThemeReference | dict],
    context: str,
    workspace_dir: str,
    themes_dir: str,
) -> list[ResolvedTheme]:
    return [parse_theme(t, context, workspace_dir, themes_dir) for t in themes]


class ThemeIndex:
    """Ordered, location-keyed set of every theme referenced by a plan.

    One index lives for exactly one resolution call; the plan composer
    creates it, seeds it with the root themes and hands it to the entry
    classifier, which adds each entry's themes.
    """

    def __init__(self, themes: Iterable[ResolvedTheme] = ()) -> None:
        self._themes: dict[str, ResolvedTheme] = {}
        self.update(themes)

    def add(self, theme: ResolvedTheme) -> ResolvedTheme:
        """Add *theme* unless one with the same location is already indexed.

        Returns the indexed record (the earlier one on a duplicate).
        """
        existing = self._themes.get(theme.location)
        if existing is not None:
            return existing
        self._themes[theme.location] = theme
        logger.debug("theme_indexed", type=theme.type, name=theme.name, location=theme.location)
        return theme

    def update(self, themes: Iterable[ResolvedTheme]) -> list[ResolvedTheme]:
        return [self.add(t) for t in themes]

    def __contains__(self, theme: object) -> bool:
        return getattr(theme, "location", None) in self._themes

    def __iter__(self) -> Iterator[ResolvedTheme]:
        return iter(self._themes.values())

    def __len__(self) -> int:
        return len(self._themes)

    def as_list(self) -> list[ResolvedTheme]:
        return list(self._themes.values())
