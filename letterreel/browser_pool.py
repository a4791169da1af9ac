"""SVG rasterization backends: pooled Playwright sessions and CairoSVG."""

import asyncio
import io
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional, Protocol

from PIL import Image

from .config import Settings, settings as default_settings
from .errors import RenderError
from .utils import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

logger = get_logger(__name__)

# Chromium refuses to start as root inside containers without these
_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class SvgRasterizer(Protocol):
    """Turns SVG markup into an image at its native aspect ratio."""

    async def rasterize(self, svg: bytes) -> Image.Image: ...


class BrowserPool:
    """Bounded pool of isolated headless Chromium sessions.

    One browser process is shared by the whole service; every checkout gets
    its own browser context and page, which are closed on return.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._slots = asyncio.Semaphore(self.settings.browser_pool_size)
        self._start_lock = asyncio.Lock()
        self._playwright: Optional["Playwright"] = None
        self._browser: Optional["Browser"] = None

    async def start(self) -> None:
        """Launch the shared browser if it is not running yet."""
        async with self._start_lock:
            if self._browser is not None:
                return
            try:
                from playwright.async_api import async_playwright
            except ImportError as e:
                raise RenderError(
                    "Playwright not installed. Run: pip install playwright && playwright install chromium"
                ) from e

            logger.info("Launching headless Chromium for SVG rendering")
            self._playwright = await async_playwright().start()
            executable = self.settings.browser_executable_path
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=_LAUNCH_ARGS,
                    executable_path=str(executable) if executable else None,
                )
            except Exception as e:
                await self._playwright.stop()
                self._playwright = None
                raise RenderError(f"Failed to launch browser: {e}") from e
            logger.info("Browser initialized")

    async def close(self) -> None:
        """Shut down the shared browser."""
        async with self._start_lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator["Page"]:
        """Check out an isolated page for the duration of the block."""
        await self.start()
        async with self._slots:
            context = await self._browser.new_context()
            try:
                page = await context.new_page()
                page.set_default_timeout(self.settings.render_timeout_seconds * 1000)
                yield page
            finally:
                await context.close()


class BrowserSvgRasterizer:
    """Screenshots the ``svg`` element of a document in a pooled page."""

    def __init__(self, pool: BrowserPool):
        self.pool = pool

    async def rasterize(self, svg: bytes) -> Image.Image:
        markup = svg.decode("utf-8", errors="replace")
        document = (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            "<style>html,body{margin:0;padding:0;background:transparent}</style>"
            f"</head><body>{markup}</body></html>"
        )
        try:
            async with self.pool.session() as page:
                await page.set_content(document, wait_until="load")
                element = await page.query_selector("svg")
                if element is None:
                    raise RenderError("SVG element not found in template file.")
                png = await element.screenshot(type="png", omit_background=True)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Browser SVG rendering failed: {e}") from e

        logger.debug(f"Rendered SVG via browser ({len(png)} bytes)")
        return _open_png(png)


class CairoSvgRasterizer:
    """Draws SVG directly with CairoSVG in a worker thread."""

    async def rasterize(self, svg: bytes) -> Image.Image:
        return await asyncio.to_thread(self._rasterize, svg)

    def _rasterize(self, svg: bytes) -> Image.Image:
        try:
            import cairosvg
        except (ImportError, OSError) as e:
            raise RenderError(f"CairoSVG unavailable: {e}") from e

        try:
            png = cairosvg.svg2png(bytestring=svg)
        except Exception as e:
            raise RenderError(f"CairoSVG rendering failed: {e}") from e
        return _open_png(png)


def _open_png(png: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(png))
        image.load()
    except Exception as e:
        raise RenderError(f"Renderer produced an unreadable image: {e}") from e
    if image.width <= 0 or image.height <= 0:
        raise RenderError("Renderer produced an empty image")
    return image.convert("RGBA")


def build_rasterizer(settings: Optional[Settings] = None, pool: Optional[BrowserPool] = None) -> SvgRasterizer:
    """Pick the SVG backend named by ``SVG_BACKEND``."""
    settings = settings or default_settings
    if settings.svg_backend == "cairosvg":
        return CairoSvgRasterizer()
    return BrowserSvgRasterizer(pool or BrowserPool(settings))
