"""HTTP surface: video and PDF endpoints backed by a shared event loop."""

import asyncio
import threading
from typing import Awaitable, Optional, Protocol, TypeVar

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .browser_pool import BrowserPool
from .config import Settings, settings as default_settings
from .errors import LetterVideoError, ValidationError
from .models import LetterRequest, parse_letter
from .pipeline import LetterVideoPipeline
from .utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class LetterService(Protocol):
    """Blocking facade the HTTP handlers call into."""

    def generate_video(self, letter: LetterRequest) -> bytes: ...

    def generate_document(self, letter: LetterRequest) -> bytes: ...


class ServiceRuntime:
    """Owns the asyncio loop, the browser pool and the pipeline.

    The loop runs in a daemon thread; request threads submit coroutines to
    it and block on the result, so concurrent requests share one browser
    without sharing any per-run state.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.pool = BrowserPool(self.settings)
        self.pipeline = LetterVideoPipeline(self.settings, pool=self.pool)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._loop is not None:
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._loop.run_forever, name="letterreel-loop", daemon=True
            )
            self._thread.start()
            logger.info("Pipeline event loop started")

    def run(self, coro: Awaitable[T]) -> T:
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def generate_video(self, letter: LetterRequest) -> bytes:
        return self.run(self.pipeline.generate_video(letter))

    def generate_document(self, letter: LetterRequest) -> bytes:
        return self.run(self.pipeline.generate_document(letter))

    def close(self) -> None:
        with self._lock:
            if self._loop is None:
                return
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        asyncio.run_coroutine_threadsafe(self.pool.close(), loop).result(timeout=30)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=10)
        loop.close()
        logger.info("Pipeline event loop stopped")


def _read_letter() -> LetterRequest:
    body = request.get_json(silent=True)
    if body is None:
        raise ValidationError("Request body must be JSON.")
    return parse_letter(body)


def create_app(service: Optional[LetterService] = None, settings: Optional[Settings] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        service: Pipeline facade; a ServiceRuntime is created when omitted
        settings: Settings instance (defaults to the global settings)

    Returns:
        Configured Flask app
    """
    settings = settings or default_settings
    service = service or ServiceRuntime(settings)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_request_bytes
    app.extensions["letterreel.service"] = service

    @app.errorhandler(LetterVideoError)
    def handle_pipeline_error(error: LetterVideoError):
        if isinstance(error, ValidationError):
            logger.info(f"[API] Rejected request: {error}")
        else:
            logger.error(f"[API] {request.path} failed: {error}")
        return jsonify({"error": error.public_message, "code": error.code}), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description, "code": error.name.lower().replace(" ", "-")}), error.code
        logger.exception(f"[API] {request.path} failed unexpectedly: {error}")
        return jsonify({"error": "Internal server error.", "code": "internal-error"}), 500

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.post("/generate-video")
    def generate_video():
        letter = _read_letter()
        letter.require_audio()
        video = service.generate_video(letter)
        return Response(video, mimetype="video/mp4")

    @app.post("/generate-pdf")
    def generate_pdf():
        letter = _read_letter()
        pdf = service.generate_document(letter)
        return Response(pdf, mimetype="application/pdf")

    return app
