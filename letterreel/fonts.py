"""Font loading and text metrics for the letter blocks."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from PIL import ImageFont

from .config import Settings, settings as default_settings
from .errors import AssetMissingError
from .layout import BlockKind, LayoutConfig, Measure, round_half_up
from .utils import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=32)
def _load_truetype(path: str, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(path, size)


class FontSet:
    """Fonts for the title, body and author blocks at their configured sizes."""

    def __init__(
        self,
        layout: LayoutConfig,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.layout = layout
        self._fonts = {kind: self._load(kind) for kind in BlockKind}

    def _font_file(self, kind: BlockKind) -> str:
        return {
            BlockKind.TITLE: self.settings.title_font,
            BlockKind.BODY: self.settings.body_font,
            BlockKind.AUTHOR: self.settings.author_font,
        }[kind]

    def _load(self, kind: BlockKind):
        size = self.layout.style_for(kind).font_size
        font_path = Path(self.settings.fonts_dir) / self._font_file(kind)
        try:
            return _load_truetype(str(font_path), size)
        except OSError as e:
            if not self.settings.allow_fallback_font:
                raise AssetMissingError(f"Font not available: {font_path}") from e
            logger.warning(f"Font {font_path} unavailable ({e}), using Pillow default font")
            return ImageFont.load_default(size)

    def font(self, kind: BlockKind):
        return self._fonts[kind]

    def measurer(self, kind: BlockKind) -> Measure:
        """Width of a string in whole pixels for a block's font."""
        font = self._fonts[kind]
        return lambda text: round_half_up(font.getlength(text))

    def measurers(self) -> dict[BlockKind, Measure]:
        return {kind: self.measurer(kind) for kind in BlockKind}
