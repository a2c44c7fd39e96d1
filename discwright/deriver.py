"""
Parameter Deriver Module

Pure functions that decide how the source material is encoded: frame-rate
and telecine transforms, chapter points, the two-pass bitrate budget and
the ffmpeg filter chains for every artifact kind.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Optional

from .context import DiscStandard
from .errors import UnsupportedFormatError, ValidationError

logger = logging.getLogger(__name__)

# NTSC players run at 30000/1001, chapter marks drift by this factor
NTSC_TIMING_FACTOR = 1.001

TELECINE_FILTER = "telecine=pattern=2332"

FILM_NTSC = Fraction(24000, 1001)
FILM = Fraction(24)
NTSC_RATE = Fraction(30000, 1001)
PAL_RATE = Fraction(25)


class ArtifactKind(Enum):
    """Kinds of encoded artifacts on the disc."""
    MENU = "menu"
    MOVIE = "movie"
    INTRO = "intro"
    FILLER = "filler"


@dataclass(frozen=True)
class FrameRateTransform:
    """How a source frame rate is converted to the disc standard's rate."""
    needs_telecine: bool = False
    speed_change: bool = False
    speed_factor: float = 1.0

    @property
    def field_dominance(self) -> str:
        return "tff" if self.needs_telecine else "prog"


@dataclass(frozen=True)
class BitrateBudget:
    """Space allocation of a single-layer disc for a two-pass encode."""
    available_capacity_bytes: int
    audio_bytes_total: int
    video_bytes_available: int
    video_bitrate_kbps: int
    capped: bool = False


def parse_frame_rate(value) -> Fraction:
    """
    Parse an ffprobe frame rate such as "24000/1001" or "25".

    Raises:
        UnsupportedFormatError: If the value is missing or not a rate
    """
    try:
        rate = Fraction(str(value).strip())
    except (ValueError, ZeroDivisionError):
        raise UnsupportedFormatError(f"Unrecognized frame rate: {value!r}") from None
    if rate <= 0:
        raise UnsupportedFormatError(f"Unrecognized frame rate: {value!r}")
    return rate


def resolve_frame_rate(source_rate, standard: DiscStandard) -> FrameRateTransform:
    """
    Decide the transform from a source frame rate to a disc standard.

    PAL accepts 25 natively and speeds film (24, 23.976) up to 25.
    NTSC accepts 29.97 natively, telecines 23.976 and slows 30 to 29.97.

    Args:
        source_rate: Source rate as a Fraction or ffprobe rate string
        standard: Target disc standard

    Returns:
        FrameRateTransform for the source rate

    Raises:
        UnsupportedFormatError: If the rate has no mapping for the standard
    """
    rate = source_rate if isinstance(source_rate, Fraction) else parse_frame_rate(source_rate)
    native = standard.frame_rate_fraction

    if rate == native:
        return FrameRateTransform()

    if standard == DiscStandard.PAL and rate in (FILM, FILM_NTSC):
        return FrameRateTransform(speed_change=True, speed_factor=float(native / rate))

    if standard == DiscStandard.NTSC:
        if rate == FILM_NTSC:
            return FrameRateTransform(needs_telecine=True)
        if rate == Fraction(30):
            return FrameRateTransform(speed_change=True, speed_factor=float(native / rate))

    raise UnsupportedFormatError(
        f"Unsupported frame rate {source_rate} for {standard.value} DVD"
    )


def generate_chapters(
    duration: float,
    interval: float = 600.0,
    buffer: float = 0.5
) -> list[float]:
    """
    Generate chapter points every `interval` seconds.

    Points are interval multiples no later than `buffer` seconds before the
    end, so the count is floor((duration - buffer) / interval).

    Args:
        duration: Total duration in seconds
        interval: Seconds between chapter points
        buffer: Minimum gap between the last point and the end

    Returns:
        Strictly increasing list of chapter timestamps in seconds
    """
    if interval <= 0:
        raise ValidationError(f"Chapter interval must be positive, got {interval}")

    limit = duration - buffer
    if limit < interval:
        return []

    count = math.floor(limit / interval)
    return [float(interval * n) for n in range(1, count + 1)]


def scale_chapters_for_disc(chapters: list[float], standard: DiscStandard) -> list[float]:
    """Apply the NTSC 1.001 timing correction, rounded to 2 decimal places."""
    if standard != DiscStandard.NTSC:
        return list(chapters)
    return [round(t * NTSC_TIMING_FACTOR, 2) for t in chapters]


def format_timestamp(value: float) -> str:
    """
    Format a chapter timestamp the same way for the encoder and dvdauthor.

    600.0 -> "600", 600.6 -> "600.6", 1201.2 -> "1201.2"
    """
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def keyframe_expression(chapters: list[float]) -> Optional[str]:
    """Build an ffmpeg -force_key_frames expression for the chapter points."""
    if not chapters:
        return None
    return "expr:" + "+".join(f"gte(t,{format_timestamp(t)})" for t in chapters)


def calculate_video_bitrate(
    duration_seconds: float,
    audio_kbps: float,
    capacity_bytes: int = 4_700_000_000,
    headroom: float = 0.12,
    max_kbps: int = 6000
) -> BitrateBudget:
    """
    Calculate the video bitrate that fills a disc after audio.

    Uses: video_kbps = (capacity * (1 - headroom) - audio_bytes) * 8 / (duration * 1000)

    Args:
        duration_seconds: Total programme duration
        audio_kbps: Combined bitrate of all audio tracks
        capacity_bytes: Nominal disc capacity
        headroom: Fraction of capacity reserved for overhead
        max_kbps: Ceiling for the video bitrate

    Returns:
        BitrateBudget with byte counts floored to whole bytes

    Raises:
        ValidationError: If the duration is not positive
    """
    if not duration_seconds or duration_seconds <= 0:
        raise ValidationError(f"Cannot budget bitrate for duration {duration_seconds}")

    available = int(round(capacity_bytes * (1 - headroom)))
    audio_bytes = duration_seconds * audio_kbps * 1000 / 8
    video_bytes = available - audio_bytes

    kbps = math.floor(video_bytes * 8 / (duration_seconds * 1000))
    capped = kbps > max_kbps
    kbps = max(0, min(max_kbps, kbps))

    return BitrateBudget(
        available_capacity_bytes=available,
        audio_bytes_total=math.floor(audio_bytes),
        video_bytes_available=math.floor(video_bytes),
        video_bitrate_kbps=kbps,
        capped=capped,
    )


def escape_filter_value(value: str) -> str:
    """Escape single quotes in a value embedded in a quoted filter argument."""
    return str(value).replace("'", "\\'")


def build_filter_chain(
    kind: ArtifactKind,
    standard: DiscStandard,
    transform: Optional[FrameRateTransform] = None,
    burn_in_subtitle: Optional[str] = None
) -> str:
    """
    Build the video filter chain for an artifact.

    Args:
        kind: Artifact being encoded
        standard: Target disc standard
        transform: Frame-rate transform (movie only)
        burn_in_subtitle: Subtitle file rendered into the picture (movie only)

    Returns:
        Comma-joined ffmpeg -vf argument
    """
    width, height = standard.resolution
    is_movie = kind == ArtifactKind.MOVIE
    field_dominance = transform.field_dominance if (is_movie and transform) else "prog"

    filters = [
        f"scale={width}:{height}",
        f"setsar={standard.sample_aspect}",
        "setdar=16/9",
        "format=yuv420p",
        f"setfield={field_dominance}",
    ]

    if is_movie:
        if transform and transform.needs_telecine:
            filters.append(TELECINE_FILTER)
        if burn_in_subtitle:
            filters.append(f"subtitles='{escape_filter_value(burn_in_subtitle)}'")

    return ",".join(filters)


def build_audio_filter(
    transform: Optional[FrameRateTransform],
    audio_offset: float = 0.0
) -> Optional[str]:
    """
    Build the audio filter keeping audio in sync with the picture.

    atempo follows a speed change, adelay applies the requested offset.
    """
    filters = []
    if transform and transform.speed_change:
        filters.append(f"atempo={transform.speed_factor}")
    if audio_offset:
        delay_ms = format_timestamp(audio_offset * 1000)
        filters.append(f"adelay={delay_ms}|{delay_ms}")
    return ",".join(filters) if filters else None
