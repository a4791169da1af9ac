"""Letter video pipeline: letter + audio -> scrolling MP4 (and PDF)."""

import asyncio
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .audio_probe import probe_duration
from .browser_pool import BrowserPool, SvgRasterizer, build_rasterizer
from .composition import CompositionPlan, build_filter_graph, build_plan
from .config import Settings, settings as default_settings
from .document import render_pdf
from .encoder import VideoEncoder
from .errors import PipelineTimeoutError
from .models import LetterRequest
from .raster import BodyRenderer, HeaderRenderer
from .utils import get_logger

logger = get_logger(__name__)

SCRATCH_PREFIX = "letter-video-"


@contextmanager
def scratch_directory(parent: Path) -> Iterator[Path]:
    """Private working directory for one run, removed however the run ends."""
    parent.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX, dir=parent) as path:
        logger.debug(f"Scratch directory created: {path}")
        yield Path(path)
    logger.debug(f"Scratch directory removed: {path}")


class LetterVideoPipeline:
    """Stateless per-request orchestration of render, probe, compose and encode."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rasterizer: Optional[SvgRasterizer] = None,
        body_renderer: Optional[BodyRenderer] = None,
        encoder: Optional[VideoEncoder] = None,
        pool: Optional[BrowserPool] = None,
    ):
        self.settings = settings or default_settings
        if rasterizer is None:
            rasterizer = build_rasterizer(self.settings, pool)
        self.header_renderer = HeaderRenderer(rasterizer, self.settings)
        self.body_renderer = body_renderer or BodyRenderer(self.settings)
        self.encoder = encoder or VideoEncoder(self.settings)
        self._runs = asyncio.Semaphore(self.settings.max_concurrent_runs)

    async def probe(self, audio_path: Path) -> float:
        return await probe_duration(audio_path, self.settings)

    async def generate_video(self, letter: LetterRequest) -> bytes:
        """
        Render a letter into a scrolling MP4 synchronised to its audio.

        Args:
            letter: Letter fields and audio bytes

        Returns:
            MP4 file contents

        Raises:
            ValidationError: If the letter carries no audio (no work is done)
            LetterVideoError: Any other pipeline failure
        """
        letter.require_audio()
        timeout = self.settings.run_timeout_seconds
        async with self._runs:
            try:
                return await asyncio.wait_for(self._run_video(letter), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise PipelineTimeoutError(f"Video generation exceeded {timeout}s") from e

    async def _run_video(self, letter: LetterRequest) -> bytes:
        with scratch_directory(self.settings.temp_dir) as scratch:
            audio_path = scratch / "audio.input"
            header_path = scratch / "header.png"
            body_path = scratch / "body.png"
            video_path = scratch / "output.mp4"

            await asyncio.to_thread(audio_path.write_bytes, letter.audio_bytes)
            duration = await self.probe(audio_path)

            header = await self.header_renderer.render(letter)
            body = await self.body_renderer.render_async(letter)

            plan = self.plan(header.size, body.size, duration)
            graph = build_filter_graph(plan)

            await asyncio.to_thread(header.save, header_path)
            await asyncio.to_thread(body.save, body_path)

            await self.encoder.encode(
                [header_path, body_path], audio_path, graph, video_path, plan.duration_seconds
            )
            return await asyncio.to_thread(video_path.read_bytes)

    def plan(self, header_size: tuple[int, int], body_size: tuple[int, int], duration: float) -> CompositionPlan:
        s = self.settings
        plan = build_plan(
            header_size,
            body_size,
            duration,
            video_width=s.video_width,
            video_height=s.video_height,
            fps=s.video_fps,
            background_color=s.background_color,
        )
        logger.info(
            f"Composition: letter {plan.video_width}x{plan.total_content_height}, "
            f"scroll {plan.scroll_distance}px over {plan.duration_seconds:.3f}s"
        )
        return plan

    async def generate_document(self, letter: LetterRequest) -> bytes:
        """Render a letter as a single-page PDF."""
        timeout = self.settings.run_timeout_seconds
        async with self._runs:
            try:
                return await asyncio.wait_for(self._run_document(letter), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise PipelineTimeoutError(f"Document generation exceeded {timeout}s") from e

    async def _run_document(self, letter: LetterRequest) -> bytes:
        body = await self.body_renderer.render_async(letter)
        header = await self.header_renderer.render(letter, width=body.width)
        pdf = await asyncio.to_thread(render_pdf, header, body)
        logger.info(f"PDF rendered ({len(pdf)} bytes)")
        return pdf
