"""Text layout engine: greedy word wrapping and two-pass letter measurement.

The measuring pass and the drawing pass share ``LayoutConfig`` and walk the
same ``LetterLayout.placements()`` sequence, so the raster allocated from the
measured height always matches where the drawing cursor ends up.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

from .config import Settings

Measure = Callable[[str], int]


def round_half_up(value: float) -> int:
    """Round to the nearest whole pixel, halves away from zero for positive sizes."""
    return int(math.floor(value + 0.5))


class Align(Enum):
    """Horizontal alignment of a text block."""

    LEFT = "left"
    CENTER = "center"


class BlockKind(Enum):
    """Logical text blocks of a letter, in drawing order."""

    TITLE = "title"
    BODY = "body"
    AUTHOR = "author"


@dataclass(frozen=True)
class BlockStyle:
    """Typography for one text block."""

    font_size: int
    line_height: int
    color: str
    align: Align = Align.LEFT


@dataclass(frozen=True)
class LayoutConfig:
    """Every numeric layout constant used to measure and draw a letter."""

    letter_width: int = 800
    padding: int = 40
    section_gap: int = 60
    title: BlockStyle = BlockStyle(font_size=48, line_height=60, color="#333333", align=Align.CENTER)
    body: BlockStyle = BlockStyle(font_size=24, line_height=44, color="#444444")
    author: BlockStyle = BlockStyle(font_size=28, line_height=40, color="#555555")

    @property
    def block_width(self) -> int:
        return self.letter_width - 2 * self.padding

    def style_for(self, kind: BlockKind) -> BlockStyle:
        return {
            BlockKind.TITLE: self.title,
            BlockKind.BODY: self.body,
            BlockKind.AUTHOR: self.author,
        }[kind]

    @classmethod
    def from_settings(cls, settings: Settings) -> "LayoutConfig":
        return cls(letter_width=settings.letter_width)


@dataclass(frozen=True)
class TextFragment:
    """A run of text drawn in one block style."""

    text: str
    kind: BlockKind


@dataclass(frozen=True)
class LayoutLine:
    """One wrapped line; its measured width never exceeds the block width
    unless it holds a single word that is wider on its own."""

    fragments: tuple[TextFragment, ...]
    width: int = 0

    @property
    def text(self) -> str:
        return "".join(fragment.text for fragment in self.fragments)

    @property
    def is_blank(self) -> bool:
        return not self.text


def wrap_text(
    text: str,
    max_width: int,
    measure: Measure,
    kind: BlockKind = BlockKind.BODY,
) -> list[LayoutLine]:
    """
    Greedily wrap text into lines no wider than ``max_width``.

    Every newline forces a break and an empty paragraph yields a blank line.
    A word wider than ``max_width`` is placed alone on its own line.

    Args:
        text: Text to wrap, may contain paragraph breaks
        max_width: Maximum line width in pixels
        measure: Returns the rendered width of a string in whole pixels
        kind: Block the produced fragments belong to

    Returns:
        Wrapped lines in reading order
    """
    if not text:
        return []

    def _line(value: str) -> LayoutLine:
        return LayoutLine(
            fragments=(TextFragment(value, kind),),
            width=measure(value) if value else 0,
        )

    lines: list[LayoutLine] = []
    paragraphs = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    for paragraph in paragraphs:
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if current and measure(candidate) > max_width:
                lines.append(_line(current))
                current = word
            else:
                current = candidate
        lines.append(_line(current))
    return lines


@dataclass(frozen=True)
class LinePlacement:
    """Where a wrapped line lands on the letter canvas."""

    line: LayoutLine
    kind: BlockKind
    top: int


@dataclass
class LetterLayout:
    """Measured title, body and author blocks of one letter."""

    config: LayoutConfig
    blocks: dict[BlockKind, list[LayoutLine]] = field(default_factory=dict)

    def lines(self, kind: BlockKind) -> list[LayoutLine]:
        return self.blocks.get(kind, [])

    def _walk(self) -> Iterator[tuple[Optional[LinePlacement], int]]:
        cursor = self.config.padding
        first = True
        for kind in BlockKind:
            lines = self.lines(kind)
            if not lines:
                continue
            if not first:
                cursor += self.config.section_gap
            first = False
            style = self.config.style_for(kind)
            for line in lines:
                yield LinePlacement(line=line, kind=kind, top=cursor), cursor
                cursor += style.line_height
        yield None, cursor + self.config.padding

    def placements(self) -> Iterator[LinePlacement]:
        """Lines in drawing order with their top offsets."""
        for placement, _ in self._walk():
            if placement is not None:
                yield placement

    @property
    def height(self) -> int:
        """Exact raster height needed to draw every placement."""
        *_, (_, bottom) = self._walk()
        return bottom


def layout_letter(
    title: str,
    content: str,
    author_name: str,
    measurers: dict[BlockKind, Measure],
    config: LayoutConfig,
) -> LetterLayout:
    """Measure pass: wrap every block of a letter at the configured width."""
    author_text = f"- {author_name}" if author_name else ""
    texts = {
        BlockKind.TITLE: title,
        BlockKind.BODY: content,
        BlockKind.AUTHOR: author_text,
    }
    blocks = {}
    for kind, text in texts.items():
        lines = wrap_text(text.strip(), config.block_width, measurers[kind], kind)
        if lines:
            blocks[kind] = lines
    return LetterLayout(config=config, blocks=blocks)

