"""ngx-cache-content-replace - swap the body of an nginx cache file."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from ngxcache_core.errors import CacheRecordError

from .pipeline import ExtractReport, RewriteReport, extract_body, replace_body

CANONICAL_JSON_KW = {"sort_keys": True, "separators": (",", ":"), "ensure_ascii": False}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.captureWarnings(True)


def _rewrite_lines(report: RewriteReport) -> list[str]:
    d = report.as_dict()
    lines = [
        f"Cache key length: {report.key_length}",
        f"Cache key: {d['cache_key']}",
        f"Headers length: {report.headers_length}",
        f"Headers start: {report.header_start}",
        "Headers:",
    ]
    for name, values in d["headers"].items():
        for value in values:
            lines.append(f"  {name}: {value}")
    lines.append(f"Body start: {report.body_start}")
    if report.dry_run:
        lines.append(f"Dry run: {report.path} left untouched")
    return lines


def _extract_lines(report: ExtractReport) -> list[str]:
    return [
        f"Content-Type: {report.content_type or '-'}",
        f"Content-Length: {report.content_length or '-'}",
        f"Body start: {report.body_start}",
        f"Extracted: {report.body_length} bytes -> {report.path}",
    ]


@click.command()
@click.option(
    "--cache-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="An existing nginx cache file",
)
@click.option(
    "--data-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Data file replacing the cached body",
)
@click.option(
    "--extract-to-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Extract the cached body to this file",
)
@click.option("--dry-run", is_flag=True, help="Just print the metadata, skip the real replacement")
@click.option("--json", "as_json", is_flag=True, help="Print the report as one JSON line")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(
    cache_file: Path,
    data_file: Path | None,
    extract_to_file: Path | None,
    dry_run: bool,
    as_json: bool,
    verbose: bool,
) -> None:
    """Replace the original cached content in an nginx cache file."""
    _configure_logging(verbose)

    if (data_file is None) == (extract_to_file is None):
        raise click.UsageError("Pass exactly one of --data-file or --extract-to-file")

    try:
        if data_file is not None:
            report = replace_body(cache_file, data_file, dry_run=dry_run)
            lines = _rewrite_lines(report)
        else:
            report = extract_body(cache_file, extract_to_file)
            lines = _extract_lines(report)
    except CacheRecordError as e:
        # Fail closed with a single-line reason naming the stage.
        if as_json:
            click.echo(json.dumps({"status": "FAIL", "error": e.as_dict()}, **CANONICAL_JSON_KW), err=True)
        else:
            click.echo(f"FATAL: [{e.stage.value}] {e}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(report.as_dict(), **CANONICAL_JSON_KW))
    else:
        for line in lines:
            click.echo(line)


if __name__ == "__main__":
    main()
