"""Tests for pipeline orchestration, scratch cleanup and end-to-end encoding."""

from __future__ import annotations

import asyncio
import json
import subprocess
from pathlib import Path

import pytest

from letterreel.config import Settings
from letterreel.errors import EncodeError, PipelineTimeoutError, ProbeError, ValidationError
from letterreel.models import LetterRequest
from letterreel.pipeline import LetterVideoPipeline, scratch_directory

from .conftest import make_wav_bytes, requires_ffmpeg


class RecordingEncoder:
    """Captures encode arguments and writes a fake MP4."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    async def encode(self, raster_paths, audio_path, filter_graph, output_path, duration_seconds):
        self.calls.append({
            "rasters": [Path(p) for p in raster_paths],
            "raster_exists": [Path(p).exists() for p in raster_paths],
            "audio": audio_path.read_bytes(),
            "graph": filter_graph,
            "duration": duration_seconds,
            "scratch": output_path.parent,
        })
        if self.fail:
            raise EncodeError("FFmpeg failed with code 1", "stream error")
        output_path.write_bytes(b"fake-mp4")
        return output_path


class FixedProbePipeline(LetterVideoPipeline):
    """Pipeline whose probe returns a fixed duration or raises."""

    def __init__(self, *args, duration: float = 10.0, probe_error: bool = False, probe_delay: float = 0, **kwargs):
        super().__init__(*args, **kwargs)
        self.duration = duration
        self.probe_error = probe_error
        self.probe_delay = probe_delay

    async def probe(self, audio_path: Path) -> float:
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error:
            raise ProbeError("Audio duration unavailable")
        return self.duration


def scratch_entries(settings: Settings) -> list[Path]:
    if not settings.temp_dir.exists():
        return []
    return list(settings.temp_dir.iterdir())


def test_scratch_directory_is_removed_on_error(tmp_path: Path) -> None:
    """Scratch space is released even when the run raises."""
    with pytest.raises(RuntimeError):
        with scratch_directory(tmp_path) as scratch:
            (scratch / "file.bin").write_bytes(b"x")
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []


def test_missing_audio_is_rejected_before_any_work(settings: Settings) -> None:
    """No scratch directory is created for a request without audio."""
    encoder = RecordingEncoder()
    pipeline = FixedProbePipeline(settings, encoder=encoder)

    with pytest.raises(ValidationError):
        asyncio.run(pipeline.generate_video(LetterRequest(title="Hi", content="x")))

    assert encoder.calls == []
    assert not settings.temp_dir.exists()


def test_probe_error_cleans_scratch(settings: Settings) -> None:
    """Undecodable audio fails the run and leaves nothing behind."""
    encoder = RecordingEncoder()
    pipeline = FixedProbePipeline(settings, encoder=encoder, probe_error=True)
    letter = LetterRequest(content="x", audio_bytes=b"garbage")

    with pytest.raises(ProbeError):
        asyncio.run(pipeline.generate_video(letter))

    assert encoder.calls == []
    assert scratch_entries(settings) == []


def test_encode_error_cleans_scratch(settings: Settings) -> None:
    """A failed encode is terminal and its scratch space is removed."""
    encoder = RecordingEncoder(fail=True)
    pipeline = FixedProbePipeline(settings, encoder=encoder)
    letter = LetterRequest(content="x", audio_bytes=b"audio")

    with pytest.raises(EncodeError):
        asyncio.run(pipeline.generate_video(letter))

    assert len(encoder.calls) == 1
    assert scratch_entries(settings) == []


def test_successful_run_feeds_encoder(settings: Settings) -> None:
    """Header and body rasters, audio and plan reach the encoder."""
    encoder = RecordingEncoder()
    pipeline = FixedProbePipeline(settings, encoder=encoder, duration=10.0)
    letter = LetterRequest(title="Hi", content="word " * 200, audio_bytes=b"audio-bytes")

    video = asyncio.run(pipeline.generate_video(letter))

    assert video == b"fake-mp4"
    call = encoder.calls[0]
    assert [p.name for p in call["rasters"]] == ["header.png", "body.png"]
    assert call["raster_exists"] == [True, True]
    assert call["audio"] == b"audio-bytes"
    assert call["duration"] == 10.0
    assert call["graph"].node("overlay").param("y").text.startswith("-min(t*30,299)/299*")
    assert not call["scratch"].exists()
    assert scratch_entries(settings) == []


def test_run_timeout(settings: Settings) -> None:
    """A run that exceeds its budget is aborted and cleaned up."""
    slow = settings.model_copy(update={"run_timeout_seconds": 0.05})
    pipeline = FixedProbePipeline(slow, encoder=RecordingEncoder(), probe_delay=5)
    letter = LetterRequest(content="x", audio_bytes=b"audio")

    with pytest.raises(PipelineTimeoutError):
        asyncio.run(pipeline.generate_video(letter))

    assert scratch_entries(settings) == []


def test_generate_document_returns_pdf(settings: Settings) -> None:
    """The document endpoint renders a PDF without audio."""
    pipeline = LetterVideoPipeline(settings, encoder=RecordingEncoder())
    letter = LetterRequest(title="Dear Sam", content="Thank you.\n\nSee you soon.", author_name="Alex")

    pdf = asyncio.run(pipeline.generate_document(letter))

    assert pdf.startswith(b"%PDF")


def ffprobe_durations(path: Path) -> tuple[float, float]:
    """Return (format duration, video stream duration) of a media file."""
    result = subprocess.run(
        [
            "ffprobe", "-v", "error",
            "-show_entries", "format=duration:stream=codec_type,duration",
            "-of", "json", str(path),
        ],
        capture_output=True,
        text=True,
        check=True,
    )
    info = json.loads(result.stdout)
    video = next(s for s in info["streams"] if s["codec_type"] == "video")
    return float(info["format"]["duration"]), float(video["duration"])


def render_end_to_end(settings: Settings, tmp_path: Path, content: str, seconds: float):
    pipeline = LetterVideoPipeline(settings)
    letter = LetterRequest(title="Hi", content=content, audio_bytes=make_wav_bytes(seconds))
    body = pipeline.body_renderer.render(letter)
    plan = pipeline.plan((settings.video_width, 1), body.size, seconds)

    video = asyncio.run(pipeline.generate_video(letter))
    output = tmp_path / "out.mp4"
    output.write_bytes(video)
    return plan, ffprobe_durations(output)


@requires_ffmpeg
def test_end_to_end_long_letter_scrolls(settings: Settings, tmp_path: Path) -> None:
    """Ten seconds of audio with a long letter yields a ten second scrolling video."""
    plan, (container, video) = render_end_to_end(settings, tmp_path, "word " * 200, 10.0)

    assert plan.scroll_distance > 0
    assert video == pytest.approx(10.0, abs=1 / settings.video_fps)
    assert container == pytest.approx(10.0, abs=0.1)
    assert scratch_entries(settings) == []


@requires_ffmpeg
def test_end_to_end_short_letter_is_static(settings: Settings, tmp_path: Path) -> None:
    """Five seconds of audio with a short letter yields a static five second video."""
    plan, (container, video) = render_end_to_end(settings, tmp_path, "A short note.", 5.0)

    assert plan.scroll_distance == 0
    assert video == pytest.approx(5.0, abs=1 / settings.video_fps)
    assert container == pytest.approx(5.0, abs=0.1)


@requires_ffmpeg
def test_end_to_end_malformed_audio(settings: Settings) -> None:
    """Garbage audio fails at probing and leaves no scratch files."""
    pipeline = LetterVideoPipeline(settings)
    letter = LetterRequest(content="x", audio_bytes=b"\x00\x01 not audio" * 50)

    with pytest.raises(ProbeError):
        asyncio.run(pipeline.generate_video(letter))

    assert scratch_entries(settings) == []
