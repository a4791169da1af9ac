"""Reduce letter markup to plain text and pull out the embedded header graphic."""

import base64
import binascii
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Optional
from urllib.parse import unquote_to_bytes

from .errors import ValidationError

# Elements whose boundaries end a line of text
_BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5",
    "h6", "header", "hr", "li", "main", "nav", "ol", "pre", "section",
    "table", "tr", "ul",
}
# Elements that separate paragraphs with a blank line
_PARAGRAPH_TAGS = {"p"}
# Elements whose text is never displayed
_HIDDEN_TAGS = {"head", "script", "style", "template", "title", "svg", "noscript"}

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<data>.*)$", re.DOTALL)


@dataclass
class EmbeddedImage:
    """Binary image decoded from a data URI."""

    mime_type: str
    data: bytes

    @property
    def is_svg(self) -> bool:
        return self.mime_type == "image/svg+xml"


@dataclass
class ExtractedMarkup:
    """Plain text body and optional header graphic from a markup document."""

    text: str
    header_image: Optional[EmbeddedImage] = None


def decode_data_uri(uri: str) -> EmbeddedImage:
    """Decode a ``data:`` URI into its media type and bytes."""
    match = _DATA_URI.match(uri.strip())
    if not match:
        raise ValidationError("Embedded image is not a valid data URI.")

    mime_type = (match.group("mime") or "text/plain").strip().lower()
    params = [p.strip().lower() for p in match.group("params").split(";") if p.strip()]
    payload = match.group("data")

    if "base64" in params:
        try:
            data = base64.b64decode(re.sub(r"\s+", "", payload), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Embedded image has invalid base64 data.") from exc
    else:
        data = unquote_to_bytes(payload)

    if not data:
        raise ValidationError("Embedded image is empty.")
    return EmbeddedImage(mime_type=mime_type, data=data)


class _LetterMarkupParser(HTMLParser):
    """Collects visible text and the first data-URI image."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.chunks: list[str] = []
        self.image_src: Optional[str] = None
        self._hidden_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _HIDDEN_TAGS:
            self._hidden_depth += 1
            return
        if tag == "img" and self.image_src is None:
            src = dict(attrs).get("src") or ""
            if src.strip().lower().startswith("data:"):
                self.image_src = src
        elif tag == "br":
            self.chunks.append("\n")
        elif tag in _PARAGRAPH_TAGS:
            self.chunks.append("\n\n")
        elif tag in _BLOCK_TAGS:
            self.chunks.append("\n")

    def handle_startendtag(self, tag, attrs):
        # <svg/> and friends must not open a hidden region
        if tag in _HIDDEN_TAGS:
            return
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag):
        if tag in _HIDDEN_TAGS:
            self._hidden_depth = max(0, self._hidden_depth - 1)
            return
        if tag in _PARAGRAPH_TAGS:
            self.chunks.append("\n\n")
        elif tag in _BLOCK_TAGS:
            self.chunks.append("\n")

    def handle_data(self, data):
        if not self._hidden_depth:
            self.chunks.append(re.sub(r"\s+", " ", data))


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace while keeping paragraph structure."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [re.sub(r"[^\S\n]+", " ", line).strip() for line in text.split("\n")]
    collapsed = re.sub(r"\n{3,}", "\n\n", "\n".join(lines))
    return collapsed.strip("\n")


def strip_markup(markup: str) -> str:
    """Reduce markup to displayable plain text.

    Structural tags become line or paragraph breaks, links keep only their
    visible text, and scripts, styles and inline SVG are dropped.
    """
    return extract_markup(markup).text


def extract_markup(markup: str) -> ExtractedMarkup:
    """Split a pre-rendered letter document into body text and header graphic."""
    parser = _LetterMarkupParser()
    parser.feed(markup)
    parser.close()

    header_image = decode_data_uri(parser.image_src) if parser.image_src else None
    return ExtractedMarkup(text=normalize_text("".join(parser.chunks)), header_image=header_image)
