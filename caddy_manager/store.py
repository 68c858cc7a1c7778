"""In-memory editing of a Caddyfile as an ordered sequence of blocks."""
from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from .config import DEFAULT_PROXY
from .errors import AlreadyExists, BlockNotFound, CaddyfileParseError, PreconditionError
from .locator import Span, find_block, scan_blocks

logger = logging.getLogger(__name__)

KIND_OTHER = "other"

_NAME_PATTERN = re.compile(r"^(?:[^\s{}#\"`]|\{[^\s{}#\"`]+\})+$")


@dataclass(frozen=True, slots=True)
class BlockKind:
    name: str
    directive: str
    default_target: str | None = None

    def render_body(self, target: str | None) -> str:
        value = target or self.default_target
        if not value:
            raise PreconditionError(f"A target is required for '{self.name}' blocks.")
        return f"    {self.directive} {value}\n"


BLOCK_KINDS: dict[str, BlockKind] = {}


def register_kind(kind: BlockKind) -> BlockKind:
    """Make ``kind`` available to add/edit and to kind detection."""
    BLOCK_KINDS[kind.name] = kind
    return kind


REVERSE_PROXY = register_kind(BlockKind("reverse_proxy", "reverse_proxy", DEFAULT_PROXY))
REDIRECT = register_kind(BlockKind("redirect", "redir"))


def get_kind(name: str) -> BlockKind:
    try:
        return BLOCK_KINDS[name]
    except KeyError:
        known = ", ".join(sorted(BLOCK_KINDS))
        raise PreconditionError(f"Unknown block kind '{name}' (expected one of: {known}).") from None


@dataclass(frozen=True, slots=True)
class BlockSummary:
    name: str
    kind: str
    target: str | None

    def as_tuple(self) -> tuple[str, str, str | None]:
        return (self.name, self.kind, self.target)


@dataclass(frozen=True, slots=True)
class Block:
    """A named block; ``text`` runs from the header line through the closing line."""

    name: str
    text: str

    @property
    def body(self) -> str:
        return self.text[self.text.index("{") + 1 : self.text.rindex("}")]

    @property
    def kind(self) -> str:
        return _detect(self.body)[0]

    @property
    def target(self) -> str | None:
        return _detect(self.body)[1]

    def summary(self) -> BlockSummary:
        kind, target = _detect(self.body)
        return BlockSummary(self.name, kind, target)


@dataclass(slots=True)
class _Entry:
    prefix: str
    block: Block


class BlockStore:
    """Ordered blocks plus the unstructured text between them.

    ``serialize()`` reproduces the loaded text byte for byte until a mutation
    is made. Nothing here touches the filesystem.
    """

    def __init__(self, entries: list[_Entry], suffix: str) -> None:
        self._entries = entries
        self._suffix = suffix

    @classmethod
    def from_text(cls, text: str) -> "BlockStore":
        entries: list[_Entry] = []
        cursor = 0
        seen: set[str] = set()
        for span in scan_blocks(text):
            entries.append(_Entry(prefix=text[cursor : span.start], block=Block(span.name, span.text(text))))
            cursor = span.end
            if span.name and span.name in seen:
                logger.warning("Duplicate block '%s' found; only the first one will be edited", span.name)
            seen.add(span.name)
        return cls(entries, text[cursor:])

    def serialize(self) -> str:
        parts: list[str] = []
        for entry in self._entries:
            parts.append(entry.prefix)
            parts.append(entry.block.text)
        parts.append(self._suffix)
        return "".join(parts)

    # Lookup

    def find(self, name: str) -> Span | None:
        """Span of ``name`` in the current serialized text."""
        return find_block(self.serialize(), name)

    def get(self, name: str) -> Block | None:
        index = self._index(name)
        return None if index is None else self._entries[index].block

    def names(self) -> list[str]:
        return [entry.block.name for entry in self._entries if entry.block.name]

    def list(self) -> list[BlockSummary]:
        return [entry.block.summary() for entry in self._entries if entry.block.name]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._index(name) is not None

    def __len__(self) -> int:
        return len(self.names())

    # Mutations

    def add(self, name: str, kind: str = REVERSE_PROXY.name, target: str | None = None) -> Block:
        name = validate_name(name)
        existing = self.get(name)
        if existing is not None:
            raise AlreadyExists(name, existing.text)
        body = get_kind(kind).render_body(validate_target(target) if target else None)
        block = Block(name, render_block(name, body))

        current = self.serialize()
        if current:
            separator = self._suffix if current.endswith("\n") else self._suffix + "\n"
            prefix = separator + "\n"
        else:
            prefix = self._suffix
        self._entries.append(_Entry(prefix=prefix, block=block))
        self._suffix = ""
        logger.debug("Appended block '%s' (%s)", name, kind)
        return block

    def remove(self, name: str) -> Block:
        index = self._index(name)
        if index is None:
            raise BlockNotFound(name)
        entry = self._entries.pop(index)
        prefix = entry.prefix
        following = self._entries[index].prefix if index < len(self._entries) else self._suffix

        trimmed = _drop_trailing_blank_line(prefix)
        if trimmed is not None:
            prefix = trimmed
        else:
            following = _drop_leading_blank_line(following)

        if index < len(self._entries):
            self._entries[index].prefix = prefix + following
        else:
            self._suffix = prefix + following
        logger.debug("Removed block '%s'", name)
        return entry.block

    def replace(self, name: str, body: str) -> Block:
        """Swap the body of ``name`` in place, keeping its position in the file."""
        index = self._index(name)
        if index is None:
            raise BlockNotFound(name)
        body = validate_body(body)
        old = self._entries[index].block
        head = old.text[: old.text.index("{") + 1]
        tail = old.text[old.text.rindex("}") :]
        block = Block(old.name, f"{head}\n{body}{tail}")
        self._entries[index].block = block
        logger.debug("Replaced body of block '%s'", name)
        return block

    def replace_kind(self, name: str, kind: str, target: str | None = None) -> Block:
        body = get_kind(kind).render_body(validate_target(target) if target else None)
        return self.replace(name, body)

    def _index(self, name: str) -> int | None:
        target = name.strip()
        for idx, entry in enumerate(self._entries):
            if entry.block.name == target:
                return idx
        return None


def render_block(name: str, body: str) -> str:
    return f"{name} {{\n{body}}}\n"


def validate_name(name: str) -> str:
    value = (name or "").strip()
    if not value or not _NAME_PATTERN.match(value):
        raise PreconditionError(f"Invalid block name '{name}'.")
    return value


def validate_target(target: str) -> str:
    value = target.strip()
    if not value or any(ch in value for ch in "{}\n\r"):
        raise PreconditionError(f"Invalid target '{target}'.")
    return value


def validate_body(body: str) -> str:
    if body and not body.endswith("\n"):
        body += "\n"
    try:
        spans = scan_blocks(f"probe {{\n{body}}}\n")
    except CaddyfileParseError as exc:
        raise PreconditionError(f"Block body is not balanced: {exc}") from exc
    if len(spans) != 1:
        raise PreconditionError("Block body closes its enclosing block early.")
    return body


def _detect(body: str) -> tuple[str, str | None]:
    directives = {kind.directive: kind for kind in BLOCK_KINDS.values()}
    depth = 0
    for raw_line in body.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if depth == 0:
            tokens = line.split()
            kind = directives.get(tokens[0])
            if kind is not None:
                args: list[str] = []
                for token in tokens[1:]:
                    if token.startswith("{") or token.startswith("#"):
                        break
                    args.append(token)
                return kind.name, " ".join(args) or None
        depth += line.count("{") - line.count("}")
    return KIND_OTHER, None


def _drop_trailing_blank_line(text: str) -> str | None:
    lines = text.splitlines(keepends=True)
    if not lines:
        return None
    last = lines[-1]
    if last.endswith("\n") and not last.strip():
        return text[: len(text) - len(last)]
    return None


def _drop_leading_blank_line(text: str) -> str:
    lines = text.splitlines(keepends=True)
    if lines and lines[0].endswith("\n") and not lines[0].strip():
        return text[len(lines[0]) :]
    return text
