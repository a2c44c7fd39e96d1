"""
Context Module

Run-scoped state for one authoring run: the normalized request arguments,
every derived filesystem location, probed media metadata, the encoder
parameter sets and the output descriptor.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from pathlib import Path
from typing import Any, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
MAX_VOLUME_NAME_LENGTH = 32


class DiscStandard(Enum):
    """DVD video standards."""
    PAL = "pal"
    NTSC = "ntsc"

    @classmethod
    def parse(cls, value: Any) -> "DiscStandard":
        """Parse a standard name case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid disc standard '{value}' (expected 'pal' or 'ntsc')"
            ) from None

    @property
    def resolution(self) -> tuple[int, int]:
        """Get resolution for the video standard."""
        if self == DiscStandard.NTSC:
            return (720, 480)
        return (720, 576)  # PAL

    @property
    def frame_rate(self) -> str:
        """Get framerate for the video standard, as ffmpeg expects it."""
        if self == DiscStandard.NTSC:
            return "30000/1001"  # 29.97 fps
        return "25"

    @property
    def frame_rate_fraction(self) -> Fraction:
        return Fraction(self.frame_rate)

    @property
    def sample_aspect(self) -> str:
        """
        Pixel aspect ratio for 16:9 content at 720 pixels wide.

        (16/9)/(720/576) is almost 64/45, (16/9)/(720/480) is almost 32/27.
        """
        if self == DiscStandard.NTSC:
            return "32/27"
        return "64/45"

    @property
    def ffmpeg_target(self) -> str:
        return f"{self.value}-dvd"


@dataclass(frozen=True)
class AudioTrack:
    """One audio input and its language code."""
    path: Path
    lang: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class SubtitleTrack:
    """One subtitle input and its language code."""
    path: Path
    lang: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class AuthorArgs:
    """Normalized request parameters for one run."""
    video: Path
    audio_tracks: tuple[AudioTrack, ...]
    still: Path
    output: Path
    scratch: Path
    standard: DiscStandard = DiscStandard.PAL
    intro: Optional[Path] = None
    subtitle_tracks: tuple[SubtitleTrack, ...] = ()
    volume_name: str = "DVD_VIDEO"
    audio_offset: float = 0.0
    subtitle_burn_in: bool = False
    two_pass: bool = True
    force_rebuild: bool = False
    job_id: Optional[str] = None

    @property
    def burn_in_subtitle(self) -> Optional[SubtitleTrack]:
        """The subtitle burned into the picture, if burn-in was requested."""
        if self.subtitle_burn_in and self.subtitle_tracks:
            return self.subtitle_tracks[0]
        return None

    @property
    def muxed_subtitle_tracks(self) -> tuple[SubtitleTrack, ...]:
        """Subtitle tracks multiplexed as selectable streams."""
        if self.subtitle_burn_in:
            return ()
        return self.subtitle_tracks


@dataclass(frozen=True)
class RunPaths:
    """Filesystem locations for every intermediate and final artifact."""
    scratch_dir: Path
    output_iso: Path
    output_dir: Path
    disc_dir: Path
    movie: Path
    muxed_movie: Path
    pass_log: Path
    menu_png: Path
    menu_normal: Path
    menu_highlight: Path
    menu_select: Path
    raw_menu: Path
    menu_spu_xml: Path
    menu: Path
    filler: Path
    intro: Path
    dvd_xml: Path

    def subtitle_xml(self, index: int) -> Path:
        return self.scratch_dir / f"spumux_sub_{index}.xml"

    def subtitle_step(self, index: int) -> Path:
        return self.scratch_dir / f"movie_sub_{index}.mpg"


@dataclass
class StreamInfo:
    """A single stream descriptor from the prober."""
    index: int
    codec_type: str
    codec_name: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[str] = None
    channels: Optional[int] = None


@dataclass
class MediaInfo:
    """Probed metadata of one input file."""
    path: Path
    duration: float
    streams: list[StreamInfo] = field(default_factory=list)

    @property
    def video(self) -> Optional[StreamInfo]:
        """First video stream, if any."""
        return next((s for s in self.streams if s.codec_type == "video"), None)

    @property
    def audio(self) -> Optional[StreamInfo]:
        """First audio stream, if any."""
        return next((s for s in self.streams if s.codec_type == "audio"), None)

    @property
    def has_audio(self) -> bool:
        return self.audio is not None


@dataclass
class MediaSet:
    """Probed metadata for every input of a run plus its chapter points."""
    video: MediaInfo
    audios: list[MediaInfo]
    intro: Optional[MediaInfo] = None
    chapters: list[float] = field(default_factory=list)
    disc_chapters: list[float] = field(default_factory=list)


@dataclass
class Artifacts:
    """Output descriptor of a run."""
    output_dir: Path
    disc_dir: Optional[Path] = None
    disc_image: Optional[Path] = None


@dataclass
class Context:
    """Mutable state of one authoring run, owned by the pipeline executor."""
    args: AuthorArgs
    paths: RunPaths
    artifacts: Artifacts
    media: Optional[MediaSet] = None
    encode_params: dict = field(default_factory=dict)
    movie_path: Optional[Path] = None

    @classmethod
    def create(cls, args: AuthorArgs) -> "Context":
        paths = derive_paths(args)
        return cls(
            args=args,
            paths=paths,
            artifacts=Artifacts(output_dir=paths.output_dir),
            movie_path=paths.movie,
        )


def parse_csv(value: Any) -> list[str]:
    """Split a comma-separated string (or pass a list through) into trimmed items."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            items.extend(parse_csv(item))
        return items
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, (str, Path)):
        return [value] if str(value) else []
    return [value]


def _language(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_LANGUAGE


def _tracks(options: dict, kind: str, track_cls: type) -> list:
    """
    Collect tracks of one kind from the loose request shapes.

    Accepts "<kind>_tracks" (dicts or track objects), "<kind>s" or "<kind>"
    (string or list of paths) plus "<kind>_languages" aligned by index.
    """
    explicit = options.get(f"{kind}_tracks")
    if explicit:
        tracks = []
        for item in explicit:
            if isinstance(item, track_cls):
                path, lang = item.path, item.lang
            else:
                path, lang = item.get("path"), item.get("lang")
            if not path:
                raise ValidationError(f"Invalid {kind} track path")
            tracks.append(track_cls(path=Path(path), lang=_language(lang)))
        return tracks

    paths = _as_list(options.get(f"{kind}s")) or _as_list(options.get(kind))
    languages = parse_csv(options.get(f"{kind}_languages"))

    tracks = []
    for index, path in enumerate(paths):
        if not str(path or "").strip():
            raise ValidationError(f"Invalid {kind} track path")
        lang = languages[index] if index < len(languages) else None
        tracks.append(track_cls(path=Path(path), lang=_language(lang)))
    return tracks


def _flag(options: dict, key: str, default: bool) -> bool:
    value = options.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def normalize_args(options: dict) -> AuthorArgs:
    """
    Normalize request options into immutable run arguments.

    Args:
        options: Request options (see AuthorArgs for the recognized keys)

    Returns:
        AuthorArgs with defaults applied

    Raises:
        ValidationError: If a required parameter is missing or invalid
    """
    for key in ("video", "still", "format", "output", "scratch"):
        if not options.get(key):
            raise ValidationError(f"Missing required parameter: {key}")

    audio_tracks = _tracks(options, "audio", AudioTrack)
    if not audio_tracks:
        raise ValidationError("Missing required parameter: audio")

    subtitle_tracks = _tracks(options, "subtitle", SubtitleTrack)

    intro = str(options.get("intro") or "").strip()
    volume_name = str(options.get("volume_name") or "DVD_VIDEO")[:MAX_VOLUME_NAME_LENGTH]

    try:
        audio_offset = float(options.get("audio_offset") or 0)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Invalid audio offset: {options.get('audio_offset')!r}"
        ) from None

    return AuthorArgs(
        video=Path(options["video"]),
        audio_tracks=tuple(audio_tracks),
        still=Path(options["still"]),
        output=Path(options["output"]),
        scratch=Path(options["scratch"]),
        standard=DiscStandard.parse(options["format"]),
        intro=Path(intro) if intro else None,
        subtitle_tracks=tuple(subtitle_tracks),
        volume_name=volume_name,
        audio_offset=audio_offset,
        subtitle_burn_in=_flag(options, "subtitle_burn_in", False),
        two_pass=_flag(options, "two_pass", True),
        force_rebuild=_flag(options, "force_rebuild", False),
        job_id=options.get("job_id"),
    )


def derive_paths(args: AuthorArgs) -> RunPaths:
    """Compute every artifact location of a run from its arguments."""
    scratch = args.scratch.resolve()
    output_iso = args.output.resolve()
    filler = scratch / "black.mpg"

    return RunPaths(
        scratch_dir=scratch,
        output_iso=output_iso,
        output_dir=output_iso.parent,
        disc_dir=scratch / "dvd",
        movie=scratch / "movie.mpg",
        muxed_movie=scratch / "movie_with_subtitles.mpg",
        pass_log=scratch / "ffmpeg2pass",
        menu_png=scratch / "menu_temp.png",
        menu_normal=scratch / "menu_normal.png",
        menu_highlight=scratch / "menu_highlight.png",
        menu_select=scratch / "menu_select.png",
        raw_menu=scratch / "raw_menu.mpg",
        menu_spu_xml=scratch / "menu_spu.xml",
        menu=scratch / "menu.mpg",
        filler=filler,
        intro=scratch / "intro.mpg" if args.intro else filler,
        dvd_xml=scratch / "dvdauthor.xml",
    )
