"""Custom exceptions for the video merger.

Every error the merge pipeline can raise derives from ``MergerError`` so the
API layer can turn it into a machine-readable error envelope. Validation
errors name the offending upload; engine errors carry the pipeline stage and
the raw FFmpeg diagnostic for operators, while exposing only a generic
message to end users.
"""

from video_merger.constants.error_codes import get_error_spec
from video_merger.schemas.envelope import ErrorInfo, ErrorLocation


class MergerError(Exception):
    """Base exception for all video merger errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message that is safe to show to the person who uploaded the files."""
        return self.message

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        retryable = spec.get("retryable", False)
        return ErrorInfo(
            code=self.code,
            message=self.public_message,
            location=self.location,
            retryable=retryable,
            retry_after_ms=spec.get("parameters", {}).get("delay_ms") if retryable else None,
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(MergerError):
    """Base class for rejected inputs."""

    code = "VALIDATION_ERROR"
    status_code = 400


class MissingInputError(ValidationError):
    """A required upload (videos or music) is missing."""

    code = "MISSING_INPUT"
    message = "Required input is missing"

    def __init__(self, field: str | None = None):
        message = f"No {field} file uploaded" if field else self.message
        location = ErrorLocation(field=field) if field else None
        super().__init__(message, location=location)


class TooManyInputsError(ValidationError):
    """More videos were submitted than the policy allows."""

    code = "TOO_MANY_INPUTS"
    message = "Too many video files"

    def __init__(self, count: int | None = None, max_count: int | None = None):
        message = self.message
        if count is not None and max_count is not None:
            message = f"Too many video files ({count}), maximum is {max_count}"
        super().__init__(message, location=ErrorLocation(field="videos"))


class FileTooLargeError(ValidationError):
    """A single upload exceeds the per-file size limit."""

    code = "FILE_TOO_LARGE"
    message = "File is too large"

    def __init__(
        self,
        file_name: str | None = None,
        size_bytes: int | None = None,
        max_bytes: int | None = None,
    ):
        message = self.message
        if file_name:
            message = f"File too large: {file_name}"
            if size_bytes is not None and max_bytes is not None:
                message += f" ({size_bytes} bytes, maximum {max_bytes} bytes)"
        location = ErrorLocation(file_name=file_name) if file_name else None
        super().__init__(message, location=location)


class MediaValidationError(ValidationError):
    """Base class for errors found while inspecting one uploaded file."""

    def __init__(self, message: str, *, file_name: str | None = None):
        self.file_name = file_name
        location = ErrorLocation(file_name=file_name) if file_name else None
        super().__init__(message, location=location)


class ProbeError(MediaValidationError):
    """The file could not be read or is not a recognized media container."""

    code = "PROBE_FAILED"
    message = "Could not read media file"

    def __init__(self, file_name: str | None = None, reason: str = ""):
        self.reason = reason
        message = f"Could not read media file {file_name}" if file_name else self.message
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, file_name=file_name)


class NoVideoStreamError(MediaValidationError):
    code = "NO_VIDEO_STREAM"
    message = "No video stream found"

    def __init__(self, file_name: str | None = None):
        message = f"No video stream found in {file_name}" if file_name else self.message
        super().__init__(message, file_name=file_name)


class NoAudioStreamError(MediaValidationError):
    code = "NO_AUDIO_STREAM"
    message = "No audio stream found"

    def __init__(self, file_name: str | None = None):
        message = f"No audio stream found in {file_name}" if file_name else self.message
        super().__init__(message, file_name=file_name)


class UnsupportedCodecError(MediaValidationError):
    """Stream codec is not in the policy whitelist."""

    code = "UNSUPPORTED_CODEC"
    message = "Unsupported codec"

    def __init__(
        self,
        file_name: str | None = None,
        codec: str | None = None,
        supported: tuple[str, ...] | list[str] = (),
        kind: str = "video",
    ):
        self.codec = codec
        self.kind = kind
        message = f"Unsupported {kind} codec"
        if codec:
            message += f" '{codec}'"
        if file_name:
            message += f" in {file_name}"
        if supported:
            message += f". Supported codecs: {', '.join(supported)}"
        super().__init__(message, file_name=file_name)


class ResolutionTooHighError(MediaValidationError):
    code = "RESOLUTION_TOO_HIGH"
    message = "Video resolution too high"

    def __init__(
        self,
        file_name: str | None = None,
        width: int | None = None,
        height: int | None = None,
        max_width: int | None = None,
        max_height: int | None = None,
    ):
        self.width = width
        self.height = height
        message = self.message
        if file_name:
            message += f" in {file_name}"
        if width is not None and height is not None:
            message += f" ({width}x{height})"
        if max_width is not None and max_height is not None:
            message += f". Maximum supported: {max_width}x{max_height}"
        super().__init__(message, file_name=file_name)


# =============================================================================
# Engine Errors (500)
# =============================================================================


class EngineError(MergerError):
    """FFmpeg exited unsuccessfully.

    ``detail`` holds the engine's raw diagnostic output and is meant for logs,
    never for end users.
    """

    code = "ENGINE_ERROR"
    status_code = 500
    message = "Media engine failed"
    stage: str = "engine"

    def __init__(self, detail: str = "", *, stage: str | None = None, message: str | None = None):
        self.detail = detail
        if stage:
            self.stage = stage
        if message is None:
            message = f"{self.__class__.message}: {detail}" if detail else self.__class__.message
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return "Video processing failed. Please try again later."


class EncodeError(EngineError):
    code = "ENCODE_FAILED"
    message = "Video normalization failed"
    stage = "normalize"


class ConcatError(EngineError):
    code = "CONCAT_FAILED"
    message = "Video concatenation failed"
    stage = "concat"


class MuxError(EngineError):
    code = "MUX_FAILED"
    message = "Adding music failed"
    stage = "mux"


class EngineTimeoutError(EngineError):
    """An engine invocation exceeded its time bound."""

    code = "ENGINE_TIMEOUT"
    status_code = 504
    message = "Media engine timed out"

    def __init__(self, stage: str, timeout_s: float, detail: str = ""):
        self.timeout_s = timeout_s
        super().__init__(
            detail,
            stage=stage,
            message=f"{stage} exceeded time limit of {timeout_s:g}s",
        )

    @property
    def public_message(self) -> str:
        return "Video processing took too long. Try shorter or fewer clips."


# =============================================================================
# System Errors
# =============================================================================


class CleanupError(MergerError):
    """A temporary file could not be removed. Logged, never raised to callers."""

    code = "CLEANUP_FAILED"
    message = "Failed to delete temporary file"

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"Failed to delete {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InternalError(MergerError):
    """Unexpected fault inside the pipeline."""

    code = "INTERNAL_ERROR"
    message = "Internal error"

    @property
    def public_message(self) -> str:
        return "Internal server error"


class PipelineJobError(MergerError):
    """Job-level failure: which stage failed and why.

    The code and HTTP status come from the underlying cause so callers can tell
    a rejected upload from an encoder crash.
    """

    def __init__(self, stage: str, cause: MergerError, job_id: str | None = None):
        self.stage = stage
        self.cause = cause
        self.job_id = job_id
        location = cause.location.model_copy() if cause.location else ErrorLocation()
        location.stage = stage
        super().__init__(
            f"Video merge failed during {stage}: {cause.message}",
            code=cause.code,
            status_code=cause.status_code,
            location=location,
            suggested_fix=cause.suggested_fix,
        )

    @property
    def public_message(self) -> str:
        return self.cause.public_message
