"""
errors.py - Typed failures raised by the conversion pipeline.

Every per-file failure derives from DripperError so the batch orchestrator
can catch one base class, skip the file and keep the typed error for
diagnostics.  Library exceptions (pydicom, Pillow, OS) are translated at the
component boundary with ``raise ... from exc``.
"""

import enum
from typing import Optional


class ErrorCode(enum.Enum):
    """Stable identifiers for each failure kind."""

    CONTAINER_PARSE_ERROR = "CONTAINER_PARSE_ERROR"
    PIXEL_DECODE_ERROR = "PIXEL_DECODE_ERROR"
    NORMALIZE_ERROR = "NORMALIZE_ERROR"
    ENCODE_ERROR = "ENCODE_ERROR"
    METADATA_ERROR = "METADATA_ERROR"
    BATCH_CANCELLED = "BATCH_CANCELLED"


class DripperError(Exception):
    """Base class for all pipeline errors."""

    error_code: ErrorCode

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        message = super().__str__()
        if self.path:
            return f"{message} [{self.path}]"
        return message


class ContainerParseError(DripperError):
    """File missing, unreadable, or not a well-formed DICOM container."""

    error_code = ErrorCode.CONTAINER_PARSE_ERROR


class PixelDecodeError(DripperError):
    """Pixel data absent, unsupported, corrupt, or inconsistent."""

    error_code = ErrorCode.PIXEL_DECODE_ERROR


class NormalizeError(DripperError):
    """Frame dimensions are zero or disagree with the pixel buffer."""

    error_code = ErrorCode.NORMALIZE_ERROR


class EncodeError(DripperError):
    """PNG serialization or data URL handling failed."""

    error_code = ErrorCode.ENCODE_ERROR


class MetadataError(DripperError):
    """A required tag is missing or malformed."""

    error_code = ErrorCode.METADATA_ERROR

    def __init__(self, message: str, tag: str, path: Optional[str] = None):
        super().__init__(message, path=path)
        self.tag = tag


class BatchCancelledError(DripperError):
    """Raised when a batch invocation is cancelled before completion."""

    error_code = ErrorCode.BATCH_CANCELLED
