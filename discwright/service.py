"""
Service Module

Request intake for the authoring service: confines user-supplied paths to
the media root, applies request defaults and hands validated jobs to the
queue. Status and download lookups read the queue's job records.
"""

import hmac
import logging
import os
import posixpath
from pathlib import Path
from typing import Optional

from .config import AppConfig
from .context import DEFAULT_LANGUAGE, MAX_VOLUME_NAME_LENGTH, parse_csv
from .errors import ValidationError
from .jobs import Job, JobQueue, JobStatus

logger = logging.getLogger(__name__)


def _normalize_path_input(value) -> str:
    return str(value or "").strip().replace("\\", "/").replace("\x00", "")


def _form_flag(value, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _form_list(value) -> list[str]:
    """Accept a list of paths or a newline-separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v).strip()]
    return [line.strip() for line in str(value).splitlines() if line.strip()]


class AuthoringService:
    """
    Intake and lookup operations behind the service surface.

    Transports (HTTP handlers, a CLI) call these methods; a ValidationError
    maps to a client error, a LookupError to "not found".
    """

    def __init__(self, config: AppConfig, jobs: JobQueue):
        self.config = config
        self.jobs = jobs

    def check_token(self, token: Optional[str]) -> bool:
        """Accept any caller when no admin token is configured."""
        required = self.config.admin_token
        if not required:
            return True
        return hmac.compare_digest(str(token or ""), required)

    def resolve_media_path(self, user_path) -> Optional[Path]:
        """
        Resolve a user path under the media root.

        Relative paths are taken relative to the media root.

        Returns:
            Absolute path, or None for an empty input

        Raises:
            ValidationError: For URLs and paths outside the media root
        """
        candidate = _normalize_path_input(user_path)
        if not candidate:
            return None

        if candidate.startswith(("http://", "https://")):
            raise ValidationError("URL inputs are not supported; provide a path under the media root")

        root = posixpath.normpath(posixpath.abspath(str(self.config.media_root)))
        resolved = posixpath.normpath(posixpath.join(root, candidate))

        if resolved != root and not resolved.startswith(root.rstrip("/") + "/"):
            raise ValidationError("Paths must be under the media root")

        return Path(resolved)

    def readable(self, user_path, label: str) -> Optional[Path]:
        """Resolve a media path and make sure it can be read."""
        resolved = self.resolve_media_path(user_path)
        if resolved is None:
            return None
        if not resolved.is_file() or not os.access(resolved, os.R_OK):
            raise ValidationError(f"Cannot read {label}")
        return resolved

    def submit_from_paths(self, form: dict) -> Job:
        """
        Queue a job for files already present under the media root.

        Args:
            form: videoPath, stillPath, introPath, audioPaths, subtitlePaths,
                audioLanguages, subtitleLanguages, format, volumeName,
                twoPass, subtitleBurnIn

        Returns:
            The queued Job

        Raises:
            ValidationError: If a path is missing, unreadable or not allowed
        """
        standard = "ntsc" if str(form.get("format") or "pal").lower() == "ntsc" else "pal"
        volume_name = str(form.get("volumeName") or self.config.default_volume_name)
        volume_name = volume_name[:MAX_VOLUME_NAME_LENGTH]

        audio_languages = parse_csv(form.get("audioLanguages"))
        subtitle_languages = parse_csv(form.get("subtitleLanguages"))

        video = self.readable(form.get("videoPath"), "video")
        still = self.readable(form.get("stillPath"), "still image")
        intro = self.readable(form.get("introPath"), "intro")

        audio_paths = _form_list(form.get("audioPaths"))
        subtitle_paths = _form_list(form.get("subtitlePaths"))

        if not video or not still or not audio_paths:
            raise ValidationError("Missing required paths: videoPath, stillPath, audioPaths")

        audio_tracks = [
            {
                "path": self.readable(path, f"audio track {index + 1}"),
                "lang": audio_languages[index] if index < len(audio_languages) else DEFAULT_LANGUAGE,
            }
            for index, path in enumerate(audio_paths)
        ]
        subtitle_tracks = [
            {
                "path": self.readable(path, f"subtitle track {index + 1}"),
                "lang": subtitle_languages[index] if index < len(subtitle_languages) else DEFAULT_LANGUAGE,
            }
            for index, path in enumerate(subtitle_paths)
        ]

        job = self.jobs.submit({
            "video": str(video),
            "still": str(still),
            "intro": str(intro) if intro else "",
            "audio_tracks": audio_tracks,
            "subtitle_tracks": subtitle_tracks,
            "format": standard,
            "volume_name": volume_name,
            "two_pass": _form_flag(form.get("twoPass"), True),
            "subtitle_burn_in": _form_flag(form.get("subtitleBurnIn"), False),
        })
        logger.info(f"Accepted job {job.id} from media paths")
        return job

    def status(self, job_id: str) -> dict:
        """
        Raises:
            LookupError: If the job is unknown
        """
        job = self.jobs.get(job_id)
        if job is None:
            raise LookupError(f"Job not found: {job_id}")
        return job.to_dict()

    def download_path(self, job_id: str) -> Path:
        """
        Location of a finished job's disc image.

        Raises:
            LookupError: If the job is unknown
            ValidationError: If the job has not succeeded or the image is gone
        """
        job = self.jobs.get(job_id)
        if job is None:
            raise LookupError(f"Job not found: {job_id}")
        if job.status != JobStatus.SUCCESS:
            raise ValidationError(f"Job {job_id} is not ready ({job.status.value})")
        if job.output is None or not Path(job.output).is_file():
            raise ValidationError(f"Output missing for job {job_id}")
        return Path(job.output)
