"""Shared fixtures and helpers for letterreel tests."""

from __future__ import annotations

import asyncio
import io
import shutil
import wave
from pathlib import Path

import pytest
from PIL import Image

from letterreel.config import Settings

FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None

requires_ffmpeg = pytest.mark.skipif(not FFMPEG_AVAILABLE, reason="ffmpeg/ffprobe not on PATH")


def char_width(text: str) -> int:
    """Monospace metrics: every character is 10 pixels wide."""
    return len(text) * 10


def make_wav_bytes(duration_seconds: float, sample_rate: int = 8000) -> bytes:
    """Build a silent mono 16-bit WAV file in memory."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(b"\x00\x00" * int(duration_seconds * sample_rate))
    return buffer.getvalue()


def make_png_bytes(width: int, height: int, color: tuple[int, int, int, int] = (200, 30, 30, 255)) -> bytes:
    """Build a solid-color RGBA PNG in memory."""
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temporary directory, using Pillow's default font."""
    assets_dir = tmp_path / "assets"
    (assets_dir / "templates").mkdir(parents=True)
    (assets_dir / "fonts").mkdir(parents=True)
    return Settings(
        assets_dir=assets_dir,
        temp_dir=tmp_path / "temp",
        allow_fallback_font=True,
        svg_backend="cairosvg",
    )


class StubProcess:
    """Stands in for an asyncio subprocess whose output never arrives."""

    def __init__(self, returncode=None):
        self.returncode = returncode
        self.killed = False

    async def communicate(self):
        await asyncio.sleep(3600)
        return b"", b""

    def kill(self) -> None:
        if self.returncode is not None:
            raise ProcessLookupError
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


def patch_subprocess(monkeypatch: pytest.MonkeyPatch, process: StubProcess) -> None:
    """Make asyncio.create_subprocess_exec hand back ``process``."""

    async def fake_exec(*args, **kwargs):
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)


async def cancel_after_start(coro) -> None:
    """Start ``coro``, let it reach its first await, then cancel it."""
    task = asyncio.ensure_future(coro)
    await asyncio.sleep(0.01)
    task.cancel()
    await task
