"""Command-line interface for Marginalia."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from marginalia.parser import DEFAULT_MAX_DEPTH, ParseResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    refs_file: Path | None
    title: str | None
    lang: str | None
    css_files: list[str]
    js_files: list[str]
    meta_tags: list[tuple[str, str]]
    max_depth: int
    fragment: bool
    strict: bool
    watch: bool
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="marginalia",
        description="Marginalia markup compiler",
    )
    p.add_argument("input", help="Input .marg file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover marginalia.toml)",
    )
    p.add_argument("--title", help="Page title")
    p.add_argument("--lang", help="Value of the html lang attribute")
    p.add_argument(
        "--css",
        action="append",
        default=[],
        metavar="FILE",
        help="CSS file to link (repeatable)",
    )
    p.add_argument(
        "--js",
        action="append",
        default=[],
        metavar="FILE",
        help="JS file to load (repeatable)",
    )
    p.add_argument(
        "--meta",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Meta tag to add (repeatable)",
    )
    p.add_argument(
        "--fragment",
        action="store_true",
        help="Emit only the ml-root element instead of a full page",
    )
    p.add_argument(
        "--refs",
        metavar="FILE",
        help="Write the reference table as JSON to FILE",
    )
    p.add_argument(
        "--max-depth",
        type=int,
        default=None,
        metavar="N",
        help=f"Nesting limit for emphasis, brackets and lists (default: {DEFAULT_MAX_DEPTH})",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Exit with status 1 if the parser recorded any warnings",
    )
    p.add_argument("--watch", action="store_true", help="Watch for changes and recompile")
    p.add_argument("--debug", action="store_true", help="Dump tree and references to stderr")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return p


def parse_meta_arg(s: str) -> tuple[str, str]:
    """Parse a NAME=VALUE string into (name, value) for meta tags."""
    if "=" not in s:
        raise argparse.ArgumentTypeError(f"invalid meta format (expected NAME=VALUE): {s}")
    name, _, value = s.partition("=")
    return name, value


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "marginalia.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def _config_files(config: dict[str, Any], table: str) -> list[str]:
    section = config.get(table)
    if isinstance(section, dict):
        files = section.get("files")
        if isinstance(files, list):
            return [str(f) for f in files]
    return []


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    title = args.title if args.title is not None else config.get("title")
    lang = args.lang if args.lang is not None else config.get("lang")

    # CSS / JS files: config entries first, then CLI
    css_files = _config_files(config, "css") + list(args.css)
    js_files = _config_files(config, "js") + list(args.js)

    # Meta tags: config < CLI
    meta_tags: list[tuple[str, str]] = []
    cfg_meta = config.get("meta")
    if isinstance(cfg_meta, dict):
        for k, v in cfg_meta.items():
            meta_tags.append((str(k), str(v)))
    for raw in args.meta:
        meta_tags.append(parse_meta_arg(raw))

    max_depth = DEFAULT_MAX_DEPTH
    cfg_depth = config.get("max_depth")
    if cfg_depth is not None:
        if not isinstance(cfg_depth, int) or isinstance(cfg_depth, bool):
            raise argparse.ArgumentTypeError(f"max_depth must be an integer: {cfg_depth!r}")
        max_depth = cfg_depth
    if args.max_depth is not None:
        max_depth = args.max_depth
    if max_depth < 1:
        raise argparse.ArgumentTypeError(f"max depth must be at least 1: {max_depth}")

    strict = bool(config.get("strict", False))
    if args.strict is not None:
        strict = args.strict

    return CliOptions(
        input_file=input_file,
        output_file=Path(args.output) if args.output else None,
        refs_file=Path(args.refs) if args.refs else None,
        title=str(title) if title is not None else None,
        lang=str(lang) if lang is not None else None,
        css_files=css_files,
        js_files=js_files,
        meta_tags=meta_tags,
        max_depth=max_depth,
        fragment=args.fragment,
        strict=strict,
        watch=args.watch,
        debug=args.debug,
    )


def compile_file(options: CliOptions) -> tuple[str, ParseResult]:
    """Read, parse, resolve, and render a Marginalia file to HTML."""
    from marginalia.debug import dump_references, dump_tree
    from marginalia.parser import parse
    from marginalia.refs import resolve
    from marginalia.render import render, render_fragment

    source = options.input_file.read_text(encoding="utf-8")
    result = parse(source, str(options.input_file), max_depth=options.max_depth)
    doc = resolve(result.document, result.references)
    logger.debug(
        "parsed %s: %d segments, %d references, %d warnings",
        options.input_file,
        len(doc.segments),
        len(result.references),
        len(result.warnings),
    )

    if options.debug:
        dump_tree(doc)
        dump_references(result.references)

    if options.fragment:
        html = render_fragment(doc) + "\n"
    else:
        html = render(
            doc,
            title=options.title,
            lang=options.lang,
            css_files=options.css_files,
            js_files=options.js_files,
            meta_tags=options.meta_tags,
        )
    return html, result


def write_outputs(options: CliOptions, html: str, result: ParseResult) -> None:
    """Write HTML to the output file (or stdout) and the optional refs JSON."""
    if options.output_file:
        options.output_file.write_text(html, encoding="utf-8")
    else:
        sys.stdout.write(html)
        sys.stdout.flush()
    if options.refs_file:
        data = json.dumps(result.references.to_dict(), indent=2)
        options.refs_file.write_text(data + "\n", encoding="utf-8")


def report_warnings(options: CliOptions, result: ParseResult) -> None:
    for warning in result.warnings:
        print(warning.format(str(options.input_file)), file=sys.stderr)


def watch_loop(options: CliOptions) -> None:
    """Poll input file for changes, recompile on each modification."""
    last_mtime = 0.0
    print(f"Watching {options.input_file} for changes...", file=sys.stderr)
    try:
        while True:
            try:
                mtime = options.input_file.stat().st_mtime
            except OSError:
                time.sleep(0.5)
                continue
            if mtime != last_mtime:
                last_mtime = mtime
                try:
                    html, result = compile_file(options)
                    report_warnings(options, result)
                    write_outputs(options, html, result)
                    print(f"Compiled {options.input_file}", file=sys.stderr)
                except (OSError, UnicodeDecodeError) as exc:
                    print(f"error: {exc}", file=sys.stderr)
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except tomllib.TOMLDecodeError as exc:
        print(f"error: invalid config file: {exc}", file=sys.stderr)
        return 2

    if options.watch:
        watch_loop(options)
        return 0

    try:
        html, result = compile_file(options)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    report_warnings(options, result)

    try:
        write_outputs(options, html, result)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if options.strict and result.warnings:
        return 1
    return 0
