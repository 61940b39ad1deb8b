"""Block parser: headers, code blocks, blockquotes, paragraphs, asides, segments."""

from __future__ import annotations

import pytest

from marginalia.ast import (
    Anchor,
    Blockquote,
    Citation,
    CodeBlock,
    FunctionSpan,
    Header,
    LineBreak,
    Paragraph,
    Text,
)
from marginalia.parser import Parser

from tests.conftest import blocks, first_line, messages


def _text(nodes) -> str:
    return "".join(n.value for n in nodes if isinstance(n, Text))


class TestDocument:
    def test_empty_source(self, parse_source):
        result = parse_source("")
        assert result.document.segments == ()
        assert result.warnings == ()
        assert result.references.sealed

    def test_only_breaks(self, parse_source):
        assert parse_source("\n\n\n").document.segments == ()

    def test_paragraph_break_separates_segments(self, parse_source):
        result = parse_source("one\n\ntwo\n\n\nthree")
        assert len(result.document.segments) == 3

    def test_parser_is_single_use(self):
        parser = Parser("text")
        parser.parse()
        with pytest.raises(RuntimeError, match="single-use"):
            parser.parse()


class TestHeaders:
    def test_level(self, parse_source):
        header = blocks(parse_source("=== Section"))[0]
        assert isinstance(header, Header)
        assert header.level == 3
        assert _text(header.children) == "Section"

    def test_consumes_one_line_break(self, parse_source):
        result = parse_source("= Title\nbody text")
        main = blocks(result)
        assert isinstance(main[0], Header)
        assert isinstance(main[1], Paragraph)
        assert _text(main[1].lines[0].children) == "body text"

    def test_five_equals_is_a_paragraph(self, parse_source):
        para = blocks(parse_source("===== x"))[0]
        assert isinstance(para, Paragraph)
        assert _text(para.lines[0].children) == "===== x"

    def test_header_keeps_links(self, parse_source):
        header = blocks(parse_source("== see www.a.com"))[0]
        assert isinstance(header, Header)
        assert len(header.children) == 2


class TestCodeBlocks:
    def test_code_block(self, parse_source):
        block = blocks(parse_source("```\ncode *x* [y]\n```"))[0]
        assert isinstance(block, CodeBlock)
        assert block.value == "code *x* [y]\n"

    def test_only_one_leading_newline_stripped(self, parse_source):
        block = blocks(parse_source("```\n\nx\n```"))[0]
        assert isinstance(block, CodeBlock)
        assert block.value == "\nx\n"

    def test_content_on_opening_line(self, parse_source):
        block = blocks(parse_source("```x```"))[0]
        assert isinstance(block, CodeBlock)
        assert block.value == "x"

    def test_spans_paragraph_breaks(self, parse_source):
        result = parse_source("```\na\n\nb\n```\n\nafter")
        main = blocks(result)
        assert isinstance(main[0], CodeBlock)
        assert main[0].value == "a\n\nb\n"
        assert isinstance(main[1], Paragraph)

    def test_unterminated_reparsed_as_paragraph(self, parse_source):
        result = parse_source("```\nplain *x*")
        para = blocks(result)[0]
        assert isinstance(para, Paragraph)
        assert _text(para.lines[0].children) == "```"
        assert _text(para.lines[1].children) == "plain "
        assert messages(result) == ["unterminated code block; rendered as a paragraph"]


class TestBlockquotes:
    def test_depth_one(self, parse_source):
        quote = blocks(parse_source("--- to be"))[0]
        assert isinstance(quote, Blockquote)
        assert quote.depth == 1
        assert _text(quote.children) == "to be"
        assert quote.citation is None

    def test_six_hyphens_nest_twice(self, parse_source):
        quote = blocks(parse_source("------ deep"))[0]
        assert isinstance(quote, Blockquote)
        assert quote.depth == 2

    def test_four_hyphens_is_a_paragraph(self, parse_source):
        para = blocks(parse_source("---- not a quote"))[0]
        assert isinstance(para, Paragraph)
        assert _text(para.lines[0].children) == "——— not a quote"

    def test_line_breaks_are_explicit(self, parse_source):
        quote = blocks(parse_source("--- a\nb"))[0]
        assert isinstance(quote, Blockquote)
        assert isinstance(quote.children[1], LineBreak)
        assert _text(quote.children) == "ab"

    def test_soft_break(self, parse_source):
        quote = blocks(parse_source("--- a...\nb"))[0]
        assert isinstance(quote, Blockquote)
        assert not any(isinstance(n, LineBreak) for n in quote.children)
        assert _text(quote.children) == "a b"

    def test_trailing_citation(self, parse_source):
        quote = blocks(parse_source("--- To be. [Hamlet]"))[0]
        assert isinstance(quote, Blockquote)
        assert isinstance(quote.citation, Citation)
        assert _text(quote.citation.children) == "Hamlet"
        assert _text(quote.children) == "To be. "

    def test_citation_before_paragraph_break(self, parse_source):
        result = parse_source("--- a\nb [Someone]\n\nnext")
        quote = blocks(result)[0]
        assert isinstance(quote, Blockquote)
        assert quote.citation is not None
        assert isinstance(blocks(result)[1], Paragraph)

    def test_mid_line_bracket_is_a_function_span(self, parse_source):
        quote = blocks(parse_source("--- a [b] c"))[0]
        assert isinstance(quote, Blockquote)
        assert quote.citation is None
        assert isinstance(quote.children[1], FunctionSpan)

    def test_bracket_before_line_break_is_not_a_citation(self, parse_source):
        quote = blocks(parse_source("--- a [b]\nc"))[0]
        assert isinstance(quote, Blockquote)
        assert quote.citation is None


class TestParagraphs:
    def test_lines(self, parse_source):
        para = blocks(parse_source("one\ntwo\nthree"))[0]
        assert isinstance(para, Paragraph)
        assert [_text(ln.children) for ln in para.lines] == ["one", "two", "three"]

    def test_trailing_line_break(self, parse_source):
        para = blocks(parse_source("one\n"))[0]
        assert isinstance(para, Paragraph)
        assert len(para.lines) == 1

    def test_paragraph_anchor(self, parse_source):
        result = parse_source(">$intro Some text")
        para = blocks(result)[0]
        assert isinstance(para, Paragraph)
        assert para.anchor_id == "anc_intro_1"
        anchor, text = para.lines[0].children
        assert isinstance(anchor, Anchor)
        assert anchor.paragraph
        assert anchor.key == "intro"
        assert text.value == "Some text"

    def test_bookmark_mid_line(self, parse_source):
        result = parse_source("text >$mid more")
        para = blocks(result)[0]
        assert isinstance(para, Paragraph)
        assert para.anchor_id is None
        anchor = first_line(result)[1]
        assert isinstance(anchor, Anchor)
        assert not anchor.paragraph

    def test_anchor_ids_are_unique(self, parse_source):
        result = parse_source(">$a x\n\n>$a y\n\n>$b z")
        ids = [b.anchor_id for b in blocks(result)]
        assert ids == ["anc_a_1", "anc_a_2", "anc_b_3"]


class TestAsides:
    def test_attached_to_previous_line(self, parse_source):
        result = parse_source("Main text\n:: side note")
        (seg,) = result.document.segments
        assert isinstance(seg.main, Paragraph)
        assert seg.aside is not None
        (note,) = seg.aside.paragraphs
        assert _text(note.lines[0].children) == "side note"

    def test_attached_after_paragraph_break(self, parse_source):
        (seg,) = parse_source("Main\n\n:: side").document.segments
        assert seg.aside is not None

    def test_consecutive_asides_merge(self, parse_source):
        (seg,) = parse_source("Main\n:: one\n:: two\n\n:: three").document.segments
        assert seg.aside is not None
        assert len(seg.aside.paragraphs) == 3

    def test_attached_to_header(self, parse_source):
        (seg,) = parse_source("= Title\n:: note").document.segments
        assert isinstance(seg.main, Header)
        assert seg.aside is not None

    def test_attached_to_list(self, parse_source):
        (seg,) = parse_source("+ a\n+ b\n:: note").document.segments
        assert seg.aside is not None

    def test_next_block_starts_new_segment(self, parse_source):
        segments = parse_source("Main\n:: note\n\nNext").document.segments
        assert len(segments) == 2
        assert segments[1].aside is None

    def test_aside_without_block(self, parse_source):
        result = parse_source(":: lonely")
        (seg,) = result.document.segments
        assert seg.aside is None
        assert isinstance(seg.main, Paragraph)
        assert _text(seg.main.lines[0].children) == ":: lonely"
        assert messages(result) == ["aside has no preceding block; rendered as a paragraph"]
