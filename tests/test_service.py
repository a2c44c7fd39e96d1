"""Tests for service request intake."""

from pathlib import Path

import pytest

from discwright.errors import ValidationError
from discwright.events import EventBus
from discwright.jobs import JobQueue, JobStatus
from discwright.pipeline import RunResult
from discwright.service import AuthoringService


def write_output(args, events):
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(b"ISO")
    return RunResult(success=True, disc_image=args.output)


@pytest.fixture
def service(config, media_dir):
    jobs = JobQueue(write_output, EventBus(), config)
    yield AuthoringService(config, jobs)
    jobs.shutdown(timeout=5)


def form(**overrides) -> dict:
    data = {
        "videoPath": "movie.mkv",
        "stillPath": "still.jpg",
        "audioPaths": ["english.wav", "polish.wav"],
        "audioLanguages": "en, pl",
    }
    data.update(overrides)
    return data


def test_resolve_media_path(service, media_dir):
    root = Path(service.config.media_root)

    assert service.resolve_media_path("movie.mkv") == root / "movie.mkv"
    assert service.resolve_media_path(str(media_dir / "movie.mkv")) == root / "movie.mkv"
    assert service.resolve_media_path("sub\\dir\\a.wav") == root / "sub" / "dir" / "a.wav"
    assert service.resolve_media_path("  ") is None


@pytest.mark.parametrize("path", ["../secret.txt", "/etc/passwd", "sub/../../x"])
def test_paths_outside_media_root_are_rejected(service, path):
    with pytest.raises(ValidationError, match="under the media root"):
        service.resolve_media_path(path)


def test_urls_are_rejected(service):
    with pytest.raises(ValidationError, match="URL inputs"):
        service.resolve_media_path("https://example.com/movie.mp4")


def test_submit_from_paths(service, media_dir):
    job = service.submit_from_paths(form(
        subtitlePaths="en.srt\npl.srt", subtitleLanguages="en", format="NTSC",
        volumeName="MY_MOVIE", twoPass="false"
    ))
    args = job.args

    assert args.video == media_dir / "movie.mkv"
    assert [(t.path.name, t.lang) for t in args.audio_tracks] == [
        ("english.wav", "en"), ("polish.wav", "pl")
    ]
    assert [(t.path.name, t.lang) for t in args.subtitle_tracks] == [
        ("en.srt", "en"), ("pl.srt", "en")
    ]
    assert args.standard.value == "ntsc"
    assert args.volume_name == "MY_MOVIE"
    assert args.two_pass is False
    assert args.subtitle_burn_in is False
    assert args.intro is None


def test_submit_defaults(service):
    args = service.submit_from_paths(form(format="secam")).args

    assert args.standard.value == "pal"
    assert args.two_pass is True
    assert args.volume_name == "DVD_VIDEO"


def test_missing_paths(service):
    with pytest.raises(ValidationError, match="Missing required paths"):
        service.submit_from_paths(form(audioPaths=[]))

    assert service.jobs.list() == []


def test_unreadable_file(service):
    with pytest.raises(ValidationError, match="Cannot read audio track 2"):
        service.submit_from_paths(form(audioPaths=["english.wav", "missing.wav"]))

    assert service.jobs.list() == []


def test_status_and_download(service):
    job = service.submit_from_paths(form())
    service.jobs.wait(job.id, timeout=10)

    status = service.status(job.id)
    assert status["status"] == JobStatus.SUCCESS.value
    assert service.download_path(job.id).read_bytes() == b"ISO"


def test_unknown_job(service):
    with pytest.raises(LookupError):
        service.status("missing")
    with pytest.raises(LookupError):
        service.download_path("missing")


def test_download_requires_finished_job(config, media_dir):
    def failing(args, events):
        return RunResult(success=False, error="boom")

    jobs = JobQueue(failing, EventBus(), config)
    service = AuthoringService(config, jobs)
    try:
        job = service.submit_from_paths(form())
        jobs.wait(job.id, timeout=10)

        with pytest.raises(ValidationError, match="not ready"):
            service.download_path(job.id)
    finally:
        jobs.shutdown(timeout=5)


def test_check_token(service):
    assert service.check_token(None)

    service.config.admin_token = "s3cret"

    assert service.check_token("s3cret")
    assert not service.check_token("wrong")
    assert not service.check_token(None)
