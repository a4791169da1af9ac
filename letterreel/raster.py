"""Raster renderer: letter body text and template header images."""

import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw

from .browser_pool import SvgRasterizer
from .config import Settings, settings as default_settings
from .errors import AssetMissingError, RenderError
from .fonts import FontSet
from .layout import Align, LayoutConfig, LetterLayout, layout_letter, round_half_up
from .models import HeaderSource, LetterRequest
from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class RasterImage:
    """A rendered image ready to be written to disk."""

    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def save(self, path: Path) -> Path:
        """Write the image as PNG."""
        self.image.save(path, format="PNG")
        return path


def placeholder_header(width: int) -> RasterImage:
    """One-pixel-tall transparent header spanning the video width."""
    return RasterImage(Image.new("RGBA", (width, 1), (0, 0, 0, 0)))


def scale_to_width(image: Image.Image, width: int) -> Image.Image:
    """Resize preserving aspect ratio; height rounds half up."""
    height = max(1, round_half_up(width * image.height / image.width))
    if image.size == (width, height):
        return image
    return image.resize((width, height), Image.LANCZOS)


class BodyRenderer:
    """Draws title, wrapped content and author onto a white canvas."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        layout: Optional[LayoutConfig] = None,
        fonts: Optional[FontSet] = None,
    ):
        self.settings = settings or default_settings
        self.layout = layout or LayoutConfig.from_settings(self.settings)
        self._fonts = fonts

    @property
    def fonts(self) -> FontSet:
        if self._fonts is None:
            self._fonts = FontSet(self.layout, self.settings)
        return self._fonts

    def measure(self, letter: LetterRequest) -> LetterLayout:
        """First pass: wrap every block and derive the canvas height."""
        return layout_letter(
            letter.title,
            letter.content,
            letter.author_name,
            self.fonts.measurers(),
            self.layout,
        )

    def draw(self, letter_layout: LetterLayout) -> RasterImage:
        """Second pass: draw onto a canvas of exactly the measured height."""
        width = self.layout.letter_width
        canvas = Image.new("RGB", (width, letter_layout.height), "#ffffff")
        draw = ImageDraw.Draw(canvas)

        for placement in letter_layout.placements():
            if placement.line.is_blank:
                continue
            style = self.layout.style_for(placement.kind)
            font = self.fonts.font(placement.kind)
            if style.align is Align.CENTER:
                x = (width - placement.line.width) // 2
            else:
                x = self.layout.padding
            y = placement.top + (style.line_height - style.font_size) // 2
            draw.text((x, y), placement.line.text, font=font, fill=style.color)

        return RasterImage(canvas)

    def render(self, letter: LetterRequest) -> RasterImage:
        letter_layout = self.measure(letter)
        logger.debug(
            f"Body layout: {len(list(letter_layout.placements()))} lines, "
            f"{self.layout.letter_width}x{letter_layout.height}"
        )
        return self.draw(letter_layout)

    async def render_async(self, letter: LetterRequest) -> RasterImage:
        return await asyncio.to_thread(self.render, letter)


class HeaderRenderer:
    """Produces the header raster at the video width.

    Source priority: caller-supplied header image, then the SVG template
    selected by ``template_id``, then a transparent placeholder.
    """

    def __init__(
        self,
        rasterizer: Optional[SvgRasterizer],
        settings: Optional[Settings] = None,
    ):
        self.rasterizer = rasterizer
        self.settings = settings or default_settings

    def load_template(self, template_id: str) -> bytes:
        path = self.settings.template_path(template_id)
        if not path.is_file():
            raise AssetMissingError(f"Template not found: {path}")
        return path.read_bytes()

    def _resolve_source(self, letter: LetterRequest) -> Optional[HeaderSource]:
        if letter.header_image is not None:
            return letter.header_image
        if letter.template_id is None:
            return None
        try:
            return HeaderSource(data=self.load_template(letter.template_id), is_svg=True)
        except AssetMissingError as e:
            logger.warning(f"{e}; using placeholder header")
            return None

    async def render(self, letter: LetterRequest, width: Optional[int] = None) -> RasterImage:
        """Render the header scaled to ``width`` (defaults to the video width)."""
        width = width or self.settings.video_width
        source = self._resolve_source(letter)
        if source is None:
            return placeholder_header(width)

        if source.is_svg:
            if self.rasterizer is None:
                raise RenderError("No SVG rendering backend configured")
            image = await self.rasterizer.rasterize(source.data)
        else:
            image = await asyncio.to_thread(_decode_bitmap, source.data)

        scaled = await asyncio.to_thread(scale_to_width, image, width)
        logger.info(f"Header rendered: {image.width}x{image.height} -> {scaled.width}x{scaled.height}")
        return RasterImage(scaled)


def _decode_bitmap(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except Exception as e:
        raise RenderError(f"Header image could not be decoded: {e}") from e
    return image.convert("RGBA")
