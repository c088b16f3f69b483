"""Typed configuration errors raised during plan resolution.

Every error derives from :class:`ConfigError` (itself a ``ValueError``) and
propagates out of the resolution call unhandled; a half-resolved plan is never
returned.
"""


class ConfigError(ValueError):
    """Base class for all build-plan configuration errors."""


class ProjectFileError(ConfigError):
    """The project file is unreadable, not a mapping, or violates the contract."""


class InvalidThemeSpecifierError(ConfigError):
    """A theme specifier is malformed or names a disallowed source."""


class MissingFileError(ConfigError):
    """A manuscript, cover image, or input file does not exist."""


class UnrecognizedManuscriptTypeError(ConfigError):
    """An entry's media type is not one of the accepted manuscript types."""


class MissingCoverImageError(ConfigError):
    """A cover entry is declared but no cover image location is known."""


class UnreachableInputFormatError(ConfigError):
    """A variant dispatch fell through every known variant."""


class MissingInputError(MissingFileError):
    """The single input given on the command line does not exist."""
