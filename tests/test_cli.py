"""Tests for the CLI module: arg parsing, exit codes, outputs, end-to-end."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from marginalia.cli import (
    CliOptions,
    build_parser,
    compile_file,
    main,
    parse_meta_arg,
    watch_loop,
)
from marginalia.parser import DEFAULT_MAX_DEPTH

# ---------------------------------------------------------------------------
# Argument parsing helpers
# ---------------------------------------------------------------------------


class TestParseHelpers:
    def test_parse_meta_arg_simple(self) -> None:
        assert parse_meta_arg("viewport=width=device-width") == (
            "viewport",
            "width=device-width",
        )

    def test_parse_meta_arg_empty_value(self) -> None:
        assert parse_meta_arg("robots=") == ("robots", "")

    def test_parse_meta_arg_no_equals_raises(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_meta_arg("noequals")


# ---------------------------------------------------------------------------
# Arg parsing via build_parser
# ---------------------------------------------------------------------------


class TestArgParsing:
    def test_input_only(self) -> None:
        ns = build_parser().parse_args(["doc.marg"])
        assert ns.input == "doc.marg"
        assert ns.output is None
        assert ns.css == []
        assert ns.max_depth is None
        assert ns.strict is None
        assert not ns.fragment

    def test_all_flags(self) -> None:
        ns = build_parser().parse_args(
            [
                "doc.marg",
                "-o",
                "out.html",
                "--title",
                "T",
                "--lang",
                "fr",
                "--css",
                "a.css",
                "--css",
                "b.css",
                "--js",
                "x.js",
                "--meta",
                "k=v",
                "--fragment",
                "--refs",
                "refs.json",
                "--max-depth",
                "10",
                "--strict",
                "--debug",
                "-v",
            ]
        )
        assert ns.output == "out.html"
        assert ns.css == ["a.css", "b.css"]
        assert ns.max_depth == 10
        assert ns.strict is True
        assert ns.fragment
        assert ns.refs == "refs.json"
        assert ns.verbose

    def test_missing_input_exits(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# compile_file
# ---------------------------------------------------------------------------


def _options(path: Path, **overrides) -> CliOptions:
    values = dict(
        input_file=path,
        output_file=None,
        refs_file=None,
        title=None,
        lang=None,
        css_files=[],
        js_files=[],
        meta_tags=[],
        max_depth=DEFAULT_MAX_DEPTH,
        fragment=False,
        strict=False,
        watch=False,
        debug=False,
    )
    values.update(overrides)
    return CliOptions(**values)


class TestCompileFile:
    def test_full_page(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("= Hi\n*there*")
        html, result = compile_file(_options(doc, title="Greeting"))
        assert "<title>Greeting</title>" in html
        assert "<h1>Hi</h1>" in html
        assert "<i>there</i>" in html
        assert result.warnings == ()

    def test_fragment(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("x")
        html, _ = compile_file(_options(doc, fragment=True))
        assert html.startswith('<div class="ml-root">')
        assert "<html" not in html

    def test_selectors_are_resolved(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("$<a>\n\n>$a here")
        html, _ = compile_file(_options(doc, fragment=True))
        assert 'href="#anc_a_1"' in html

    def test_max_depth_applies(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("***a***")
        _, result = compile_file(_options(doc, max_depth=2))
        assert result.warnings

    def test_debug_dumps_to_stderr(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text(">$a x $<a>")
        compile_file(_options(doc, debug=True))
        err = capsys.readouterr().err
        assert err.startswith("Document\n")
        assert "References" in err
        assert "[1] a: anchors=anc_a_1 selectors=1" in err


# ---------------------------------------------------------------------------
# main(): exit codes and outputs
# ---------------------------------------------------------------------------


class TestMain:
    def test_stdout(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("hello")
        assert main([str(doc)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("<!DOCTYPE html>")
        assert "<div>hello</div>" in out

    def test_output_file(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("hello")
        out = tmp_path / "out.html"
        assert main([str(doc), "-o", str(out)]) == 0
        assert "<div>hello</div>" in out.read_text(encoding="utf-8")

    def test_refs_file(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text(">$t x\n\n$<t> $<u>")
        refs = tmp_path / "refs.json"
        out = tmp_path / "out.html"
        assert main([str(doc), "-o", str(out), "--refs", str(refs)]) == 0
        data = json.loads(refs.read_text(encoding="utf-8"))
        assert data == {
            "t": {"index": 1, "anchors": ["anc_t_1"], "selectors": 1},
            "u": {"index": 2, "anchors": [], "selectors": 1},
        }

    def test_warnings_printed(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("*open")
        assert main([str(doc), "-o", str(tmp_path / "o.html")]) == 0
        err = capsys.readouterr().err
        assert "warning: unmatched '*' rendered literally" in err
        assert f"{doc}:1:1" in err
        assert "^" in err

    def test_strict_with_warnings(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("*open")
        assert main([str(doc), "-o", str(tmp_path / "o.html"), "--strict"]) == 1

    def test_strict_without_warnings(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("*closed*")
        assert main([str(doc), "-o", str(tmp_path / "o.html"), "--strict"]) == 0

    def test_missing_input(self, tmp_path: Path, capsys) -> None:
        assert main([str(tmp_path / "nope.marg")]) == 2
        assert "error:" in capsys.readouterr().err

    def test_bad_meta(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("x")
        assert main([str(doc), "--meta", "novalue"]) == 2

    def test_bad_max_depth(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("x")
        assert main([str(doc), "--max-depth", "0"]) == 2

    def test_unwritable_output(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("x")
        out = tmp_path / "missing-dir" / "out.html"
        assert main([str(doc), "-o", str(out)]) == 2


# ---------------------------------------------------------------------------
# watch_loop(): one polling pass, then interrupted
# ---------------------------------------------------------------------------


def _stop_after_first_pass(monkeypatch) -> None:
    def interrupt(_seconds: float) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr("marginalia.cli.time.sleep", interrupt)


class TestWatchLoop:
    def test_compiles_on_first_pass(self, tmp_path: Path, monkeypatch, capsys) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_text("hello")
        out = tmp_path / "doc.html"
        _stop_after_first_pass(monkeypatch)
        watch_loop(_options(doc, output_file=out, watch=True))
        assert "<div>hello</div>" in out.read_text()
        assert f"Compiled {doc}" in capsys.readouterr().err

    def test_undecodable_input_keeps_watching(
        self, tmp_path: Path, monkeypatch, capsys
    ) -> None:
        doc = tmp_path / "doc.marg"
        doc.write_bytes(b"caf\xe9 \xff")
        _stop_after_first_pass(monkeypatch)
        watch_loop(_options(doc, watch=True))
        err = capsys.readouterr().err
        assert "error:" in err
        assert "utf-8" in err
        assert "Compiled" not in err
