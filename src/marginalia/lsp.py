"""Minimal LSP server for Marginalia: diagnostics only."""

from __future__ import annotations

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from marginalia import __version__
from marginalia.errors import MarkupWarning
from marginalia.parser import parse

server = LanguageServer(
    "marginalia-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


def _to_diagnostic(warning: MarkupWarning) -> Diagnostic:
    span = warning.span
    return Diagnostic(
        range=Range(
            start=Position(line=span.start.line - 1, character=span.start.column - 1),
            end=Position(line=span.end.line - 1, character=span.end.column - 1),
        ),
        message=warning.message,
        severity=DiagnosticSeverity.Warning,
        source="marginalia",
    )


def _validate(ls: LanguageServer, uri: str) -> None:
    """Parse the document and publish its fallback warnings."""
    doc = ls.workspace.get_text_document(uri)
    filename = uri.rsplit("/", 1)[-1] if "/" in uri else uri
    result = parse(doc.source, filename)
    diagnostics = [_to_diagnostic(w) for w in result.warnings]

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
