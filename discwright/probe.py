"""
Probe Module

Media inspection through ffprobe (via ffmpeg-python): container duration
and per-stream codec, resolution, frame rate and channel descriptors.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import ffmpeg

from .context import MediaInfo, StreamInfo
from .errors import ExternalToolError, ProbeError

logger = logging.getLogger(__name__)


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _frame_rate(stream: dict) -> Optional[str]:
    """Prefer r_frame_rate, skipping ffprobe's "0/0" placeholder."""
    for key in ("r_frame_rate", "avg_frame_rate"):
        value = stream.get(key)
        if value and value not in ("0/0", "0"):
            return value
    return None


def parse_probe_result(path: Path, data: dict) -> MediaInfo:
    """
    Convert ffprobe JSON into MediaInfo.

    Raises:
        ProbeError: If the data has no streams or no usable duration
    """
    raw_streams = data.get("streams") or []
    if not raw_streams:
        raise ProbeError(f"No media streams found in {path}")

    streams = []
    for position, stream in enumerate(raw_streams):
        codec_type = stream.get("codec_type", "")
        streams.append(StreamInfo(
            index=_to_int(stream.get("index")) if "index" in stream else position,
            codec_type=codec_type,
            codec_name=stream.get("codec_name", ""),
            width=_to_int(stream.get("width")),
            height=_to_int(stream.get("height")),
            frame_rate=_frame_rate(stream) if codec_type == "video" else None,
            channels=_to_int(stream.get("channels")),
        ))

    duration = _to_float((data.get("format") or {}).get("duration"))
    if not duration:
        # Some containers only report per-stream durations
        stream_durations = [_to_float(s.get("duration")) for s in raw_streams]
        duration = max((d for d in stream_durations if d), default=None)

    if not duration:
        raise ProbeError(f"Could not determine duration of {path}")

    return MediaInfo(path=path, duration=duration, streams=streams)


class MediaProber:
    """Synchronous ffprobe wrapper, called once per input file per run."""

    def __init__(self, ffprobe_cmd: str = "ffprobe"):
        self.ffprobe_cmd = ffprobe_cmd

    def probe(self, path: Union[str, Path]) -> MediaInfo:
        """
        Probe a media file.

        Args:
            path: Path to the media file

        Returns:
            MediaInfo with duration and stream descriptors

        Raises:
            ProbeError: If the file is unreadable or not a media container
            ExternalToolError: If ffprobe cannot be started
        """
        path = Path(path)
        if not path.is_file():
            raise ProbeError(f"Cannot read media file: {path}")

        try:
            data = ffmpeg.probe(str(path), cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
            raise ProbeError(f"ffprobe could not read {path}: {stderr}") from e
        except OSError as e:
            raise ExternalToolError(
                f"ffprobe could not be started: {e}", tool="ffprobe"
            ) from e

        info = parse_probe_result(path, data)
        logger.debug(f"Probed {path}: {info.duration:.2f}s, {len(info.streams)} stream(s)")
        return info
