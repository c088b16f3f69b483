#!/usr/bin/env python3
"""Resolve a bookplan project (or a single input) and emit the build plan.

Usage:
    python scripts/generate_plan.py [INPUT] \\
        [--config bookplan.config.yaml] \\
        [-o book.pdf [-f pdf]] [-o site -f webpub] \\
        [--plan-out /path/to/plan.json]

Without INPUT the project file (``--config`` or ``bookplan.config.*`` in the
working directory) declares the entries; with INPUT a single manuscript,
web page, publication manifest or EPUB is planned ad hoc.

Exit codes:
    0  — resolved successfully
    1  — configuration error or invalid project file
    2  — bad arguments / input or project file not found
"""

import argparse
import json
import os
import sys
from pathlib import Path

import jsonschema

# Ensure project root is on sys.path so resolvers/* and models/* are importable
# when the script is invoked from any working directory.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.models.publication_config import InlineOptions, InputSpec  # noqa: E402
from app.utils.logging import configure_logging  # noqa: E402
from resolvers.errors import ConfigError, MissingInputError  # noqa: E402
from resolvers.overrides import infer_output_targets  # noqa: E402
from resolvers.task import load_and_resolve  # noqa: E402

_CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "app" / "contracts"
_SCHEMA_OUT = json.loads((_CONTRACTS_DIR / "ResolvedPlan.v1.json").read_text(encoding="utf-8"))


class _TargetAction(argparse.Action):
    """Collect ``-o``/``-f`` flags into ordered ``{output, format}`` pairs.

    ``-o a -o b -f epub``   → ``[{output: a}, {output: b, format: epub}]``
    ``-f pdf -o a -o b``    → ``[{output: a, format: pdf}, {output: b}]``
    """

    def __init__(self, option_strings, dest, key: str, **kwargs):
        self.key = key
        super().__init__(option_strings, dest, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        pairs = list(getattr(namespace, self.dest, None) or [])
        if not pairs or self.key in pairs[-1]:
            pairs.append({self.key: values})
        else:
            pairs[-1][self.key] = values
        setattr(namespace, self.dest, pairs)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("input", nargs="?", metavar="INPUT",
                        help="Single manuscript, URL, manifest or EPUB to plan.")
    parser.add_argument("--config", "-c", metavar="PATH",
                        help="Project file (default: bookplan.config.* in --cwd).")
    parser.add_argument("--output", "-o", dest="targets", action=_TargetAction, key="output",
                        metavar="PATH", help="Output file or directory; repeatable.")
    parser.add_argument("--format", "-f", dest="targets", action=_TargetAction, key="format",
                        metavar="FORMAT", help="Format for the neighbouring --output.")
    parser.add_argument("--input-format", metavar="FORMAT",
                        choices=["markdown", "webbook", "pub-manifest", "epub", "epub-opf"],
                        help="Format of INPUT (inferred from its name when omitted).")
    parser.add_argument("--theme", "-t", action="append", metavar="THEME",
                        help="Theme path, URL or package specifier; repeatable.")
    parser.add_argument("--size", "-s", metavar="SIZE",
                        help="Page size: a preset (A4, letter) or WIDTH,HEIGHT.")
    parser.add_argument("--press-ready", "-p", action="store_true", default=None,
                        help="Make PDF outputs press-ready (PDF/X-1a).")
    parser.add_argument("--title", metavar="TITLE")
    parser.add_argument("--author", metavar="AUTHOR")
    parser.add_argument("--language", "-l", metavar="LANG")
    parser.add_argument("--reading-progression", choices=["ltr", "rtl"])
    parser.add_argument("--timeout", type=int, metavar="SECONDS",
                        help="Renderer timeout in seconds.")
    parser.add_argument("--style", metavar="PATH_OR_URL", help="Author stylesheet to add.")
    parser.add_argument("--user-style", metavar="PATH_OR_URL", help="User stylesheet to add.")
    parser.add_argument("--css", metavar="CSS", help="Inline CSS to add.")
    parser.add_argument("--crop-marks", "-m", action="store_true", default=None)
    parser.add_argument("--bleed", metavar="LENGTH")
    parser.add_argument("--crop-offset", metavar="LENGTH")
    parser.add_argument("--single-doc", action="store_true", default=None)
    parser.add_argument("--quick", action="store_true", default=None)
    parser.add_argument("--no-sandbox", dest="sandbox", action="store_false", default=None)
    parser.add_argument("--executable-browser", metavar="PATH")
    parser.add_argument("--proxy-server", metavar="URL")
    parser.add_argument("--proxy-bypass", metavar="HOSTS")
    parser.add_argument("--proxy-user", metavar="USER")
    parser.add_argument("--proxy-pass", metavar="PASSWORD")
    parser.add_argument("--ignore-https-errors", action="store_true", default=None)
    parser.add_argument("--log-level", choices=["silent", "info", "verbose", "debug"])
    parser.add_argument("--cwd", metavar="DIR", help="Working directory (default: $PWD).")
    parser.add_argument("--plan-out", metavar="PATH",
                        help="Write the plan envelope here instead of stdout.")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    configure_logging(args.log_level)

    cwd = os.path.abspath(args.cwd or os.getcwd())

    # 1. Validate the project path; the single input is checked by the resolver
    # against the project directory
    if args.config and not (Path(cwd) / args.config).exists():
        print(f"ERROR: project file not found: {Path(cwd) / args.config}", file=sys.stderr)
        sys.exit(2)

    # 2. Build inline options
    try:
        options = InlineOptions(
            cwd=args.cwd,
            config=args.config,
            input=InputSpec(entry=args.input, format=args.input_format) if args.input else None,
            title=args.title,
            author=args.author,
            language=args.language,
            reading_progression=args.reading_progression,
            theme=args.theme,
            size=args.size,
            press_ready=args.press_ready,
            timeout=args.timeout * 1000 if args.timeout is not None else None,
            targets=infer_output_targets(args.targets) if args.targets else None,
            crop_marks=args.crop_marks,
            bleed=args.bleed,
            crop_offset=args.crop_offset,
            css=args.css,
            style=args.style,
            user_style=args.user_style,
            single_doc=args.single_doc,
            quick=args.quick,
            sandbox=args.sandbox,
            executable_browser=args.executable_browser,
            proxy_server=args.proxy_server,
            proxy_bypass=args.proxy_bypass,
            proxy_user=args.proxy_user,
            proxy_pass=args.proxy_pass,
            log_level=args.log_level,
            ignore_https_errors=args.ignore_https_errors,
        )
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)

    # 3. Resolve
    try:
        plan = load_and_resolve(options)
    except MissingInputError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # 4. Envelope (per ResolvedPlan.v1.json), validated before writing
    envelope = {
        "schema_id": "ResolvedPlan",
        "schema_version": "1.0.0",
        "producer": "bookplan/generate_plan.py",
        "plan": plan.model_dump(mode="json"),
    }
    try:
        jsonschema.validate(instance=envelope, schema=_SCHEMA_OUT)
    except jsonschema.ValidationError as exc:
        print(
            f"ERROR: plan envelope does not conform to ResolvedPlan.v1.json: {exc.message}",
            file=sys.stderr,
        )
        sys.exit(1)

    text = json.dumps(envelope, indent=2)
    if not args.plan_out:
        print(text)
        return

    output_path = Path(args.plan_out)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text, encoding="utf-8")

    # 5. Summary
    print(
        f"OK: {len(plan.entries)} entries; {len(plan.outputs)} outputs; "
        f"{len(plan.export_aliases)} aliases → {output_path}"
    )


if __name__ == "__main__":
    main()
