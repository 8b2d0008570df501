"""
stackwire CLI

Usage:
    stackwire plan <manifest> [--templates DIR] [--output text|json] [-c Key=Value ...]
    stackwire render <manifest> [--templates DIR] [--format json|yaml] [-o FILE] [-p Key=Value ...] [-c Key=Value ...]
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from stackwire import __version__
from stackwire.config import get_settings
from stackwire.logging import LOG_FORMATS, configure_logging


def _add_context_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--context", dest="context", action="append",
        help="Manifest context value (Key=Value, repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stackwire", description="Declarative resource composition")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Log level (default: STACKWIRE_LOG_LEVEL)")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Log renderer")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Compose a manifest and show the creation order")
    plan_parser.add_argument("manifest", help="Path to composition manifest YAML")
    plan_parser.add_argument("--templates", dest="templates_dir", help="Resource template directory")
    plan_parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    _add_context_argument(plan_parser)

    render_parser = subparsers.add_parser("render", help="Render the orchestrator document")
    render_parser.add_argument("manifest", help="Path to composition manifest YAML")
    render_parser.add_argument("--templates", dest="templates_dir", help="Resource template directory")
    render_parser.add_argument("--format", choices=["json", "yaml"], default="json", help="Document format")
    render_parser.add_argument("-o", "--output", dest="output_file", help="Write to file instead of stdout")
    render_parser.add_argument(
        "-p", "--parameter", dest="parameters", action="append",
        help="Deploy-time parameter value (Key=Value, repeatable)",
    )
    _add_context_argument(render_parser)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        level=args.log_level or settings.log_level,
        fmt=args.log_format or settings.log_format,
    )

    if args.command == "plan":
        from stackwire.cli.plan import plan_command

        sys.exit(plan_command(
            args.manifest,
            templates_dir=args.templates_dir,
            output_format=args.output,
            context=args.context,
        ))

    if args.command == "render":
        from stackwire.cli.render import render_command

        sys.exit(render_command(
            args.manifest,
            templates_dir=args.templates_dir,
            output_format=args.format,
            output_file=args.output_file,
            parameters=args.parameters,
            context=args.context,
        ))

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
