"""
Command line entry point.

    pagebinder render cpc --output cpc.pdf --hide "header, footer"
    pagebinder serve
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from pagebinder.core.config import init_config
from pagebinder.core.exceptions import ContextStartError
from pagebinder.core.logging_config import configure_structlog
from pagebinder.models.capture import JobReport, JobStats
from pagebinder.services.browser_session import PlaywrightRenderer
from pagebinder.services.render_job import RenderJob, build_job_config
from pagebinder.services.site_urls import load_urls_file, resolve_site_urls

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pagebinder',
        description='Render an ordered list of web pages into one merged PDF'
    )
    parser.add_argument('--env-file', help='Path to .env file')
    parser.add_argument('--config', type=Path, help='Path to YAML config file')
    subparsers = parser.add_subparsers(dest='command', required=True)

    render = subparsers.add_parser('render', help='Render a site into a PDF')
    render.add_argument('slug', nargs='?', help='Site identifier (defaults to SITE_DEFAULT_SLUG)')
    render.add_argument('--output', '-o', type=Path, help='Output path (default: output-<slug>.pdf)')
    render.add_argument('--batch-size', type=int, help='URLs per capture context')
    render.add_argument('--width-cap', type=int, help='Maximum page width in pixels')
    render.add_argument('--hide', help='Comma-separated CSS selectors to hide')
    render.add_argument('--urls-file', type=Path, help='Render the URLs in this file instead of the site list')
    render.add_argument('--deadline', type=float, help='Job deadline in seconds')

    serve = subparsers.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', help='Bind address')
    serve.add_argument('--port', type=int, help='Bind port')

    return parser


def print_report(report: JobReport, stats: Optional[JobStats], output: Optional[Path]) -> None:
    """Print the per-URL outcome of a job."""
    for url in report.succeeded:
        print(f"  ok      {url}")
    for failed in report.failed:
        print(f"  FAILED  {failed.url} ({failed.reason.value}: {failed.detail})")
    for warning in report.warnings:
        print(f"  warning {warning.url}: {warning.step} {warning.reason}")

    line = f"{len(report.succeeded)} succeeded, {len(report.failed)} failed, {report.page_count} pages"
    if stats is not None:
        line += f" in {stats.duration_seconds:.1f}s ({stats.batch_count} batches)"
    print(line)
    if output is not None:
        print(f"PDF saved to {output}")


def render_command(args, config) -> int:
    slug = args.slug or config.site.default_slug
    if args.urls_file:
        urls = load_urls_file(args.urls_file)
    else:
        urls = resolve_site_urls(slug, config.site)

    hide_selectors = [s.strip() for s in args.hide.split(',')] if args.hide else None
    job_config = build_job_config(
        urls,
        render_config=config.render,
        batch_size=args.batch_size,
        width_cap_px=args.width_cap,
        hide_selectors=hide_selectors,
        deadline_seconds=args.deadline
    )

    job = RenderJob(job_config, PlaywrightRenderer(config.render))
    try:
        report = asyncio.run(job.run())
    except ContextStartError as e:
        logger.error(f"Renderer could not be started: {e}")
        return 2

    if not report.has_document:
        print_report(report, job.stats, None)
        logger.error("No pages were rendered; nothing written")
        return 1

    output = args.output or Path(f"output-{slug}.pdf")
    output.write_bytes(report.final_document)
    print_report(report, job.stats, output)
    return 0


def serve_command(args, config) -> int:
    import uvicorn

    host = args.host or config.api.host
    port = args.port or config.api.port
    logger.info(f"Starting API server on {host}:{port}")

    uvicorn.run(
        "pagebinder.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=config.api.reload,
        workers=1 if config.api.reload else config.api.workers,
        log_level=config.monitoring.log_level.lower()
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = init_config(env_file=args.env_file, yaml_config_path=args.config)
    except Exception as e:
        print(f"Failed to initialize configuration: {e}", file=sys.stderr)
        return 1

    configure_structlog(
        log_level=config.monitoring.log_level,
        json_logs=(config.monitoring.log_format == 'json'),
        development_mode=(config.environment == 'development')
    )

    try:
        if args.command == 'render':
            return render_command(args, config)
        return serve_command(args, config)
    except ValueError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
