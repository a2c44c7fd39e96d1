"""
Errors Module

Exception taxonomy shared by every authoring stage.
"""

from typing import Optional


class AuthoringError(Exception):
    """Base exception for authoring errors."""
    pass


class ValidationError(AuthoringError):
    """Raised when a required input is missing or invalid."""
    pass


class ProbeError(AuthoringError):
    """Raised when a media file cannot be read or is not a media container."""
    pass


class UnsupportedFormatError(AuthoringError):
    """Raised when a source frame rate has no mapping for the disc standard."""
    pass


class TemplateError(AuthoringError):
    """Raised when a description document is missing a required field."""
    pass


class ExternalToolError(AuthoringError):
    """Raised when an external tool is unavailable or exits non-zero."""

    def __init__(
        self,
        message: str,
        tool: Optional[str] = None,
        returncode: Optional[int] = None
    ):
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
