"""
discwright - DVD-Video Authoring Pipeline

Turns a movie, one or more audio tracks, optional subtitles, an intro clip
and a still image into a playable DVD-Video ISO with a menu and chapter
marks, by driving ffmpeg, spumux, dvdauthor and an ISO writer.
"""

__version__ = "0.1.0"
__author__ = "discwright Contributors"

from .config import AppConfig
from .context import (
    AudioTrack,
    AuthorArgs,
    Context,
    DiscStandard,
    SubtitleTrack,
    normalize_args,
)
from .errors import (
    AuthoringError,
    ExternalToolError,
    ProbeError,
    TemplateError,
    UnsupportedFormatError,
    ValidationError,
)
from .events import EventBus, JobEventPublisher, NullPublisher
from .pipeline import Pipeline, RunResult, author
from .jobs import Job, JobQueue, JobStatus
from .service import AuthoringService
from .tools import check_dependencies

__all__ = [
    # Configuration
    "AppConfig",
    # Run context
    "AudioTrack",
    "AuthorArgs",
    "Context",
    "DiscStandard",
    "SubtitleTrack",
    "normalize_args",
    # Errors
    "AuthoringError",
    "ExternalToolError",
    "ProbeError",
    "TemplateError",
    "UnsupportedFormatError",
    "ValidationError",
    # Events
    "EventBus",
    "JobEventPublisher",
    "NullPublisher",
    # Pipeline
    "Pipeline",
    "RunResult",
    "author",
    # Job queue
    "Job",
    "JobQueue",
    "JobStatus",
    "AuthoringService",
    "check_dependencies",
]
