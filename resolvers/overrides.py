"""Merge command-line overrides into a declared project.

The CLI flags that mirror project-file fields (title, author, language,
theme, size, press-ready, timeout, outputs, reading progression) replace the
project values; everything else on :class:`InlineOptions` is a per-run option
read directly by the plan composer.
"""

import os

from app.models.publication_config import (
    BuildTask,
    InlineOptions,
    InputFormat,
    OutputDeclaration,
    OutputFormat,
)
from resolvers.errors import ConfigError
from resolvers.outputs import infer_format_by_name
from resolvers.paths import is_valid_uri

# Project fields that a same-named inline option overrides.
_OVERRIDABLE_FIELDS: tuple[str, ...] = (
    "title",
    "author",
    "language",
    "reading_progression",
    "theme",
    "size",
    "press_ready",
    "timeout",
)

_EXT_TO_INPUT_FORMAT: dict[str, InputFormat] = {
    ".md": InputFormat.MARKDOWN,
    ".markdown": InputFormat.MARKDOWN,
    ".json": InputFormat.PUB_MANIFEST,
    ".jsonld": InputFormat.PUB_MANIFEST,
    ".epub": InputFormat.EPUB,
    ".opf": InputFormat.EPUB_OPF,
}


def infer_input_format(entry: str) -> InputFormat:
    """Guess a single input's format from its name; URLs and HTML are webbooks."""
    if is_valid_uri(entry):
        return InputFormat.WEBBOOK
    ext = os.path.splitext(entry)[1].lower()
    return _EXT_TO_INPUT_FORMAT.get(ext, InputFormat.WEBBOOK)


def infer_output_targets(pairs: list[dict[str, str]]) -> list[OutputDeclaration]:
    """Turn order-sensitive ``-o``/``-f`` pairs into output declarations.

    Each pair is ``{"output": ..., "format": ...}`` with either key possibly
    absent.  A format without an output is an error; a missing format is
    inferred from the output's file name.
    """
    targets: list[OutputDeclaration] = []
    for pair in pairs:
        output = pair.get("output")
        fmt = pair.get("format")
        if not output:
            raise ConfigError(
                f"ERROR: Couldn't find the output option corresponding --format {fmt} "
                "option. Please check the command options."
            )
        if not fmt:
            resolved_format = infer_format_by_name(output)
        else:
            try:
                resolved_format = OutputFormat(fmt)
            except ValueError:
                raise ConfigError(f"ERROR: Unknown format: {fmt}") from None
        targets.append(OutputDeclaration(path=output, format=resolved_format))
    return targets


def apply_inline_overrides(task: BuildTask, options: InlineOptions) -> BuildTask:
    """Return a copy of *task* with the CLI overrides in *options* applied."""
    update = {
        name: getattr(options, name)
        for name in _OVERRIDABLE_FIELDS
        if getattr(options, name) is not None
    }
    if options.targets:
        update["output"] = list(options.targets)
    if not update:
        return task
    return task.model_copy(update=update)


def resolve_input_spec(options: InlineOptions) -> InlineOptions:
    """Fill in the single input's format when the CLI left it unset."""
    if options.input is None or options.input.format is not None:
        return options
    spec = options.input.model_copy(
        update={"format": infer_input_format(options.input.entry)}
    )
    return options.model_copy(update={"input": spec})
