"""Shared fakes for the external tools and the media prober."""

import os
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from discwright.config import AppConfig
from discwright.context import MediaInfo, StreamInfo
from discwright.errors import ExternalToolError, ProbeError


class FakeTools:
    """Records every tool invocation and writes the files a real tool would."""

    def __init__(self, fail_on: Optional[str] = None):
        self.calls: list[list[str]] = []
        self.runs: list[tuple[list[str], Optional[Path], Optional[Path]]] = []
        self.fail_on = fail_on

    def find(self, tool: str) -> str:
        return tool

    def _maybe_fail(self, tool: str):
        if tool == self.fail_on:
            raise ExternalToolError(f"{tool} failed with code 1: boom", tool=tool, returncode=1)

    def run(self, cmd, stdin_path=None, stdout_path=None, cwd=None, timeout=None) -> str:
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self.runs.append((cmd, stdin_path, stdout_path))
        self._maybe_fail(cmd[0])

        if stdout_path:
            Path(stdout_path).write_bytes(b"muxed:" + " ".join(cmd).encode())
        if cmd[0] == "dvdauthor":
            disc_dir = Path(cmd[cmd.index("-o") + 1])
            (disc_dir / "VIDEO_TS").mkdir(parents=True, exist_ok=True)
            (disc_dir / "VIDEO_TS" / "VIDEO_TS.IFO").write_bytes(b"IFO")
        return ""

    def run_ffmpeg(self, cmd, duration=0.0, progress_callback=None) -> None:
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self._maybe_fail(cmd[0])

        output = cmd[-1]
        if output != os.devnull:
            Path(output).write_bytes(b"mpeg:" + " ".join(cmd).encode())
        if progress_callback:
            progress_callback(1.0)

    def tool_names(self) -> list[str]:
        return [cmd[0] for cmd in self.calls]


class FakeImageWriter:
    """Stands in for DiscImageWriter; the call is recorded on the tools."""

    def __init__(self, tools: FakeTools):
        self.tools = tools

    def create_iso(self, dvd_structure_dir, output_path, volume_label="DVD_VIDEO",
                   progress_callback=None):
        self.tools.calls.append(["iso", str(dvd_structure_dir), str(output_path), volume_label])
        Path(output_path).write_bytes(b"ISO")
        if progress_callback:
            progress_callback(1.0, "ISO created successfully")
        return Path(output_path)


def video_info(path, duration=1830.0, frame_rate="25", with_audio=True) -> MediaInfo:
    streams = [StreamInfo(index=0, codec_type="video", codec_name="h264",
                          width=1920, height=1080, frame_rate=frame_rate)]
    if with_audio:
        streams.append(StreamInfo(index=1, codec_type="audio", codec_name="aac", channels=2))
    return MediaInfo(path=Path(path), duration=duration, streams=streams)


def audio_info(path, duration=1830.0) -> MediaInfo:
    return MediaInfo(
        path=Path(path),
        duration=duration,
        streams=[StreamInfo(index=0, codec_type="audio", codec_name="pcm_s16le", channels=2)]
    )


class FakeProber:
    """Returns canned MediaInfo by file name."""

    def __init__(self, infos: Optional[dict] = None):
        self.infos = infos or {}
        self.probed: list[Path] = []

    def probe(self, path) -> MediaInfo:
        path = Path(path)
        self.probed.append(path)
        if path.name not in self.infos:
            raise ProbeError(f"Cannot read media file: {path}")
        info = self.infos[path.name]
        info.path = path
        return info


@pytest.fixture
def media_dir(tmp_path) -> Path:
    """Input files of a typical run."""
    media = tmp_path / "media"
    media.mkdir()
    for name in ("movie.mkv", "english.wav", "polish.wav", "intro.mp4", "en.srt", "pl.srt"):
        (media / name).write_bytes(b"data")
    Image.new("RGB", (1280, 720), (40, 60, 90)).save(media / "still.jpg")
    return media


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber({
        "movie.mkv": video_info("movie.mkv"),
        "english.wav": audio_info("english.wav"),
        "polish.wav": audio_info("polish.wav"),
        "intro.mp4": video_info("intro.mp4", duration=12.0, with_audio=False),
    })


@pytest.fixture
def tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        media_root=tmp_path / "media",
        output_root=tmp_path / "output",
        scratch_root=tmp_path / "scratch",
    )


@pytest.fixture
def options(media_dir, tmp_path) -> dict:
    return {
        "video": str(media_dir / "movie.mkv"),
        "audios": [str(media_dir / "english.wav")],
        "audio_languages": "en",
        "still": str(media_dir / "still.jpg"),
        "format": "pal",
        "output": str(tmp_path / "out" / "disc.iso"),
        "scratch": str(tmp_path / "work"),
    }
