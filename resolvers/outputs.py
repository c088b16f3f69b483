"""Output target normalization.

Declared outputs are resolved to absolute, format-typed descriptors; when none
are declared a single PDF named after the project title is synthesized.
"""

import os

from app.constants import DEFAULT_OUTPUT_FILENAME, EPUB_OUTPUT_VERSION
from app.models.publication_config import OutputDeclaration, OutputFormat
from models.resolution import EpubOutput, PdfOutput, WebPublicationOutput
from resolvers.errors import UnreachableInputFormatError

ResolvedOutput = PdfOutput | EpubOutput | WebPublicationOutput


def infer_format_by_name(path: str) -> OutputFormat:
    """``.pdf`` → pdf, ``.epub`` → epub, anything else → webpub."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".pdf":
        return OutputFormat.PDF
    if ext == ".epub":
        return OutputFormat.EPUB
    return OutputFormat.WEBPUB


def normalize_outputs(
    declared: list[OutputDeclaration] | None,
    context: str,
    title: str | None,
    press_ready: bool = False,
) -> list[ResolvedOutput]:
    """Expand the declared output list into absolute output descriptors.

    Args:
        declared:     Outputs from the project file or CLI; ``None`` or empty
                      means "not declared".
        context:      Directory relative output paths are resolved against.
        title:        Project title used to name the default PDF.
        press_ready:  Project-wide flag turning on press-ready preflight for
                      PDFs that do not set their own preflight.
    """
    default_preflight = "press-ready" if press_ready else None

    if not declared:
        filename = f"{title}.pdf" if title else DEFAULT_OUTPUT_FILENAME
        return [
            PdfOutput(
                path=os.path.normpath(os.path.join(context, filename)),
                preflight=default_preflight,
            )
        ]

    outputs: list[ResolvedOutput] = []
    for target in declared:
        path = os.path.normpath(os.path.join(context, target.path))
        fmt = target.format or infer_format_by_name(target.path)
        if fmt == OutputFormat.PDF:
            outputs.append(
                PdfOutput(
                    path=path,
                    render_mode=target.render_mode or "local",
                    preflight=target.preflight or default_preflight,
                    preflight_option=list(target.preflight_option or []),
                )
            )
        elif fmt == OutputFormat.EPUB:
            outputs.append(EpubOutput(path=path, version=EPUB_OUTPUT_VERSION))
        elif fmt == OutputFormat.WEBPUB:
            outputs.append(WebPublicationOutput(path=path))
        else:
            raise UnreachableInputFormatError(f"ERROR: unknown output format: {fmt}")
    return outputs
