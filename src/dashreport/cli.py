"""
dashreport command line.

Usage:
    dashreport render <dashboard> [--from now-6h] [--to now] [--var host=tikv-1] [-o report.pdf]
    dashreport serve [--host 0.0.0.0] [--port 8686]
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
from pathlib import Path
from typing import Sequence

from dashreport.config import Settings, get_settings
from dashreport.core.errors import ConfigurationError, main_with_error_handling
from dashreport.grafana.timerange import TimeRange
from dashreport.logging import configure_logging
from dashreport.report import new_report


def parse_variables(pairs: Sequence[str]) -> dict[str, list[str]]:
    """Turn ``["host=a", "host=b", "var-db=x"]`` into ``{"host": ["a", "b"], "db": ["x"]}``."""
    variables: dict[str, list[str]] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        name = name.strip().removeprefix("var-")
        if not sep or not name:
            raise ConfigurationError(f"invalid variable binding {pair!r}, expected name=value")
        variables.setdefault(name, []).append(value)
    return variables


async def _render(
    settings: Settings,
    dashboard: str,
    time_range: TimeRange,
    output: Path,
    *,
    api_version: str | None,
    token: str | None,
    variables: dict[str, list[str]],
) -> None:
    report = new_report(
        settings,
        dashboard,
        time_range,
        api_version=api_version,
        api_token=token,
        variables=variables,
    )
    async with report:
        pdf = await report.generate()
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "wb") as fh:
            shutil.copyfileobj(pdf, fh)


@main_with_error_handling()
def render_command(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.layout:
        settings = settings.model_copy(update={"layout_file": args.layout})
    try:
        time_range = TimeRange.create(args.from_, args.to)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    output = Path(args.output)
    asyncio.run(
        _render(
            settings,
            args.dashboard,
            time_range,
            output,
            api_version=args.api,
            token=args.token,
            variables=parse_variables(args.var),
        )
    )
    print(f"Report written to {output}")
    return 0


@main_with_error_handling()
def serve_command(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "dashreport.api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dashreport", description="Grafana dashboard PDF reports")
    parser.add_argument("--log-level", default=None, help="debug, info, warning, error")
    parser.add_argument("--log-file", default=None, help="Write logs to this file")
    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render a dashboard to PDF")
    render_parser.add_argument("dashboard", help="Dashboard slug (v4) or uid (v5)")
    render_parser.add_argument("--from", dest="from_", default=None, help="Range start (default now-1h)")
    render_parser.add_argument("--to", default=None, help="Range end (default now)")
    render_parser.add_argument("--token", default=None, help="Grafana API token")
    render_parser.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Template variable binding, repeatable",
    )
    render_parser.add_argument("--api", choices=["v4", "v5"], default=None, help="Grafana API flavour")
    render_parser.add_argument("--layout", default=None, help="Layout YAML file")
    render_parser.add_argument("-o", "--output", default="report.pdf", help="Output PDF path")
    render_parser.set_defaults(handler=render_command)

    serve_parser = subparsers.add_parser("serve", help="Serve reports over HTTP")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.set_defaults(handler=serve_command)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        args.log_level or settings.log_level,
        log_file=args.log_file or settings.log_file,
        json=False,
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        sys.exit(2)
    sys.exit(handler(args))


if __name__ == "__main__":
    main()
