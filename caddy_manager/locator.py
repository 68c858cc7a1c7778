"""Locate top-level blocks in Caddyfile text by brace depth."""
from __future__ import annotations

from dataclasses import dataclass

from .errors import CaddyfileParseError

_QUOTES = "\"`"
_TOKEN_BREAKS = " \t\r\n{}"


@dataclass(frozen=True, slots=True)
class Span:
    """Character extent of one top-level block.

    ``start`` is the first character of the header line and ``end`` is one
    past the newline that follows the closing brace. When other tokens follow
    the closing brace on the same line, ``end`` stops right after the brace so
    spans never overlap.
    """

    name: str
    start: int
    open_brace: int
    close_brace: int
    end: int
    start_line: int
    end_line: int

    def text(self, source: str) -> str:
        return source[self.start : self.end]

    def body(self, source: str) -> str:
        return source[self.open_brace + 1 : self.close_brace]


def scan_blocks(text: str) -> list[Span]:
    """Return every top-level block in file order.

    This is a minimal scanner, not a parser: it only tracks brace depth, so
    nested sub-directive blocks stay inside their parent's span. Braces inside
    comments and quoted tokens are ignored, and a top-level block only opens
    on a standalone ``{`` so header placeholders like ``{$DOMAIN}`` are kept
    in the name.
    """
    spans: list[Span] = []
    length = len(text)
    pos = 0
    depth = 0
    line = 1
    line_start = 0
    floor = 0
    header_start = 0
    header_line = 1
    open_index = 0

    while pos < length:
        ch = text[pos]
        if ch == "\n":
            line += 1
            line_start = pos + 1
        elif ch == "#" and _at_token_start(text, pos):
            newline = text.find("\n", pos)
            pos = length if newline == -1 else newline
            continue
        elif ch in _QUOTES and _at_token_start(text, pos):
            closing = _find_closing_quote(text, pos)
            if closing is None:
                raise CaddyfileParseError(f"Unterminated quoted token on line {line}")
            line += text.count("\n", pos, closing)
            last_newline = text.rfind("\n", pos, closing)
            if last_newline != -1:
                line_start = last_newline + 1
            pos = closing + 1
            continue
        elif ch == "{":
            if depth == 0 and not _opens_block(text, pos):
                closing = text.find("}", pos)
                if closing == -1 or "\n" in text[pos:closing]:
                    raise CaddyfileParseError(f"Unterminated placeholder on line {line}")
                pos = closing + 1
                continue
            if depth == 0:
                header_start = max(line_start, floor)
                header_line = line
                open_index = pos
            depth += 1
        elif ch == "}":
            if depth == 0:
                raise CaddyfileParseError(f"Unexpected '}}' on line {line}")
            depth -= 1
            if depth == 0:
                end = _block_end(text, pos)
                spans.append(
                    Span(
                        name=text[header_start:open_index].strip(),
                        start=header_start,
                        open_brace=open_index,
                        close_brace=pos,
                        end=end,
                        start_line=header_line,
                        end_line=line,
                    )
                )
                floor = end
        pos += 1

    if depth:
        raise CaddyfileParseError(f"Unbalanced braces: block opened on line {header_line} is never closed")
    return spans


def find_block(text: str, name: str) -> Span | None:
    """Return the span of the block declared as ``name``, or ``None``.

    The header must read ``<name> {`` once surrounding whitespace is ignored;
    ``name`` is compared literally, never as a pattern.
    """
    target = name.strip()
    for span in scan_blocks(text):
        if span.name == target:
            return span
    return None


def block_names(text: str) -> list[str]:
    return [span.name for span in scan_blocks(text) if span.name]


def _at_token_start(text: str, pos: int) -> bool:
    return pos == 0 or text[pos - 1] in _TOKEN_BREAKS


def _opens_block(text: str, pos: int) -> bool:
    """A block opener is a ``{`` token of its own; ``{$HOST}`` in a header is a placeholder."""
    following = text[pos + 1 : pos + 2]
    return not following or following in " \t\r\n"


def _find_closing_quote(text: str, open_index: int) -> int | None:
    quote = text[open_index]
    idx = open_index + 1
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch == "\\" and quote == '"':
            idx += 2
            continue
        if ch == quote:
            return idx
        idx += 1
    return None


def _block_end(text: str, close_index: int) -> int:
    newline = text.find("\n", close_index)
    rest_end = len(text) if newline == -1 else newline
    rest = text[close_index + 1 : rest_end].strip()
    if rest and not rest.startswith("#"):
        return close_index + 1
    return rest_end if newline == -1 else newline + 1
