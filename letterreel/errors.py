"""Error taxonomy for the letter rendering pipeline."""

from typing import Optional


class LetterVideoError(RuntimeError):
    """Base error for a failed pipeline run."""

    status_code = 500
    code = "pipeline-failed"
    public_message = "Failed to generate video."


class ValidationError(LetterVideoError):
    """A required request field is missing, empty or malformed."""

    status_code = 400
    code = "validation-error"

    @property
    def public_message(self) -> str:
        return str(self)


class AssetMissingError(LetterVideoError):
    """A referenced template or font file does not exist."""

    code = "asset-missing"


class ProbeError(LetterVideoError):
    """Audio duration could not be determined."""

    code = "probe-failed"


class RenderError(LetterVideoError):
    """The raster rendering backend failed."""

    code = "render-failed"


class EncodeError(LetterVideoError):
    """The encoder exited non-zero or produced no output."""

    code = "encode-failed"

    def __init__(self, message: str, diagnostics: Optional[str] = None):
        super().__init__(message)
        self.diagnostics = diagnostics or ""


class PipelineTimeoutError(LetterVideoError):
    """A pipeline run exceeded its time budget."""

    status_code = 504
    code = "timeout"
    public_message = "Video generation timed out."
