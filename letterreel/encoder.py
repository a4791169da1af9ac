"""FFmpeg encoder for the composited letter video."""

import asyncio
from pathlib import Path
from typing import Optional, Sequence

from .composition import FilterGraph, format_number
from .config import Settings, settings as default_settings
from .errors import EncodeError
from .utils import get_logger

logger = get_logger(__name__)


class VideoEncoder:
    """Runs one ffmpeg process per request: still rasters + audio -> H.264 MP4."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def build_command(
        self,
        raster_paths: Sequence[Path],
        audio_path: Path,
        filter_graph: FilterGraph,
        output_path: Path,
        duration_seconds: float,
    ) -> list[str]:
        """
        Build the ffmpeg argument list.

        Rasters become looped inputs 0..n-1 and the audio is input n. Output
        duration is clamped to the probed audio duration.
        """
        s = self.settings
        cmd = [s.ffmpeg_path, "-y", "-hide_banner", "-nostdin"]
        for path in raster_paths:
            cmd.extend(["-loop", "1", "-framerate", str(s.video_fps), "-i", str(path)])
        cmd.extend(["-i", str(audio_path)])

        audio_index = len(raster_paths)
        cmd.extend([
            "-filter_complex", filter_graph.render(),
            "-map", f"[{filter_graph.output_label}]",
            "-map", f"{audio_index}:a:0",
            "-c:v", s.video_codec,
            "-preset", s.x264_preset,
            "-crf", str(s.x264_crf),
            "-pix_fmt", s.pixel_format,
            "-r", str(s.video_fps),
            "-c:a", s.audio_codec,
        ])
        if s.audio_codec != "copy":
            cmd.extend(["-b:a", s.audio_bitrate])
        cmd.extend([
            "-movflags", "+faststart",
            "-t", format_number(duration_seconds),
            "-f", "mp4",
            str(output_path),
        ])
        return cmd

    async def encode(
        self,
        raster_paths: Sequence[Path],
        audio_path: Path,
        filter_graph: FilterGraph,
        output_path: Path,
        duration_seconds: float,
    ) -> Path:
        """
        Execute ffmpeg once.

        Raises:
            EncodeError: If ffmpeg is missing, times out, exits non-zero
                or leaves no output file
        """
        cmd = self.build_command(raster_paths, audio_path, filter_graph, output_path, duration_seconds)
        logger.info(f"Running FFmpeg: {' '.join(cmd[:5])}...")
        logger.debug(f"Full command: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EncodeError("FFmpeg not found. Is it installed?") from e

        timeout = self.settings.encode_timeout_seconds
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise EncodeError(f"FFmpeg timed out after {timeout}s") from e
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise

        diagnostics = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            logger.error(f"FFmpeg stderr: {diagnostics}")
            raise EncodeError(f"FFmpeg failed with code {process.returncode}", diagnostics)

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncodeError(f"FFmpeg completed but output file not found: {output_path}", diagnostics)

        logger.info(f"Video rendered successfully: {output_path}")
        return output_path
