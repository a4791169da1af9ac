"""Audio duration probing with ffprobe."""

import asyncio
import json
from pathlib import Path
from typing import Optional

from .config import Settings, settings as default_settings
from .errors import ProbeError
from .utils import get_logger

logger = get_logger(__name__)


def build_probe_command(ffprobe_path: str, audio_path: Path) -> list[str]:
    return [
        ffprobe_path,
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "format=duration:stream=codec_type",
        "-of", "json",
        str(audio_path),
    ]


def parse_duration(output: str) -> float:
    """
    Extract a positive duration from ffprobe JSON output.

    Raises:
        ProbeError: If there is no audio stream or no usable duration
    """
    try:
        info = json.loads(output or "{}")
    except json.JSONDecodeError as e:
        raise ProbeError(f"Unreadable ffprobe output: {e}") from e

    streams = info.get("streams") or []
    if not any(stream.get("codec_type") == "audio" for stream in streams):
        raise ProbeError("No audio stream found")

    raw = (info.get("format") or {}).get("duration")
    try:
        duration = float(raw)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Audio duration unavailable: {raw!r}") from e
    if not duration > 0:
        raise ProbeError(f"Audio duration invalid: {duration}")
    return duration


async def probe_duration(audio_path: Path, settings: Optional[Settings] = None) -> float:
    """
    Get duration of an audio file in seconds.

    Args:
        audio_path: Path to the decoded audio file

    Returns:
        Duration in seconds, always > 0

    Raises:
        ProbeError: If ffprobe fails or reports no duration
    """
    settings = settings or default_settings
    if not audio_path.is_file():
        raise ProbeError(f"Audio file not found: {audio_path}")

    cmd = build_probe_command(settings.ffprobe_path, audio_path)
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except FileNotFoundError as e:
        raise ProbeError("ffprobe not found. Is FFmpeg installed?") from e

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(), timeout=settings.probe_timeout_seconds
        )
    except asyncio.TimeoutError as e:
        if process.returncode is None:
            process.kill()
        await process.wait()
        raise ProbeError(f"ffprobe timed out after {settings.probe_timeout_seconds}s") from e
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
        raise

    if process.returncode != 0:
        diagnostics = stderr.decode("utf-8", errors="replace").strip()
        logger.error(f"ffprobe stderr: {diagnostics}")
        raise ProbeError(f"ffprobe failed with code {process.returncode}")

    duration = parse_duration(stdout.decode("utf-8", errors="replace"))
    logger.info(f"Audio duration: {duration:.3f}s")
    return duration
