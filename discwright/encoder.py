"""
Encoder Module

Builds the ffmpeg parameter sets for each disc artifact (filler, intro,
movie, menu) and runs them, in one or two passes, to produce DVD-compliant
MPEG-2 program streams with AC3 audio.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import AppConfig
from .context import Context, DiscStandard
from .deriver import (
    ArtifactKind,
    BitrateBudget,
    build_audio_filter,
    build_filter_chain,
    calculate_video_bitrate,
    keyframe_expression,
    resolve_frame_rate,
)
from .errors import ValidationError
from .tools import ToolRunner

logger = logging.getLogger(__name__)

ONE_PASS_QUALITY = 2
AUDIO_BITRATE = "224k"
AUDIO_SAMPLE_RATE = 48000
AUDIO_CHANNELS = 2

SILENT_AUDIO = f"anullsrc=channel_layout=stereo:sample_rate={AUDIO_SAMPLE_RATE}"


@dataclass
class EncodeParams:
    """One encoder invocation plan (two commands when two-pass)."""
    kind: ArtifactKind
    standard: DiscStandard
    inputs: list[list[str]]
    output_path: Path
    filter_chain: str
    video_options: list[str] = field(default_factory=list)
    audio_options: list[str] = field(default_factory=list)
    output_options: list[str] = field(default_factory=list)
    two_pass: bool = False
    video_bitrate_kbps: Optional[int] = None
    quality: int = ONE_PASS_QUALITY
    pass_log: Optional[Path] = None
    force_keyframes: Optional[str] = None
    audio_filter: Optional[str] = None
    duration: float = 0.0
    budget: Optional[BitrateBudget] = None

    def _common(self) -> list[str]:
        args = ["-target", self.standard.ffmpeg_target, "-map", "0:v:0", *self.video_options]
        if self.force_keyframes:
            args += ["-force_key_frames", self.force_keyframes]
        args += ["-vf", self.filter_chain]
        return args

    def _audio(self) -> list[str]:
        args = list(self.audio_options)
        if self.audio_filter:
            args += ["-af", self.audio_filter]
        return args

    def commands(self) -> list[list[str]]:
        """
        Assemble the ffmpeg command lines.

        Two-pass mode yields an analysis pass over the video input only
        (no audio, output discarded) and an encode pass sharing the pass log.
        """
        flat_inputs = [arg for group in self.inputs for arg in group]
        output = str(self.output_path)

        if not self.two_pass:
            return [[
                "ffmpeg", "-y",
                *flat_inputs,
                *self._common(),
                "-q:v", str(self.quality),
                *self._audio(),
                *self.output_options,
                output,
            ]]

        if not self.video_bitrate_kbps or not self.pass_log:
            raise ValidationError("Two-pass encoding needs a bitrate and a pass log")

        bitrate = f"{self.video_bitrate_kbps}k"
        pass_log = str(self.pass_log)

        first_pass = [
            "ffmpeg", "-y",
            *self.inputs[0],
            *self._common(),
            "-b:v", bitrate,
            "-pass", "1",
            "-passlogfile", pass_log,
            "-an",
            "-f", "null", os.devnull,
        ]
        second_pass = [
            "ffmpeg", "-y",
            *flat_inputs,
            *self._common(),
            "-b:v", bitrate,
            "-pass", "2",
            "-passlogfile", pass_log,
            *self._audio(),
            *self.output_options,
            output,
        ]
        return [first_pass, second_pass]


def _audio_codec_options() -> list[str]:
    return [
        "-c:a", "ac3",
        "-b:a", AUDIO_BITRATE,
        "-ar", str(AUDIO_SAMPLE_RATE),
        "-ac", str(AUDIO_CHANNELS),
    ]


def build_filler_params(ctx: Context, config: AppConfig) -> EncodeParams:
    """Black picture with silence, used as a spacer and as the missing intro."""
    standard = ctx.args.standard
    width, height = standard.resolution
    duration = config.filler_duration_seconds

    return EncodeParams(
        kind=ArtifactKind.FILLER,
        standard=standard,
        inputs=[
            ["-f", "lavfi", "-i",
             f"color=c=black:s={width}x{height}:r={standard.frame_rate}:d={duration}"],
            ["-f", "lavfi", "-i", SILENT_AUDIO],
        ],
        output_path=ctx.paths.filler,
        filter_chain=build_filter_chain(ArtifactKind.FILLER, standard),
        audio_options=["-map", "1:a:0", *_audio_codec_options()],
        output_options=["-t", str(duration)],
        duration=float(duration),
    )


def build_intro_params(ctx: Context) -> EncodeParams:
    """Intro clip at constant quality, silent when it carries no audio."""
    standard = ctx.args.standard
    intro = ctx.media.intro if ctx.media else None
    if intro is None:
        raise ValidationError("Intro encode requested without a probed intro")

    inputs = [["-i", str(ctx.args.intro)]]
    output_options = []
    if intro.has_audio:
        audio_map = "0:a:0"
    else:
        inputs.append(["-f", "lavfi", "-i", SILENT_AUDIO])
        audio_map = "1:a:0"
        output_options.append("-shortest")

    return EncodeParams(
        kind=ArtifactKind.INTRO,
        standard=standard,
        inputs=inputs,
        output_path=ctx.paths.intro,
        filter_chain=build_filter_chain(ArtifactKind.INTRO, standard),
        audio_options=["-map", audio_map, *_audio_codec_options()],
        output_options=output_options,
        duration=intro.duration,
    )


def build_movie_params(ctx: Context, config: AppConfig) -> EncodeParams:
    """
    Main feature: frame-rate transform, chapter keyframes, every audio track,
    optional subtitle burn-in and, in two-pass mode, the disc bitrate budget.

    Raises:
        UnsupportedFormatError: If the video frame rate has no mapping
        ValidationError: If media has not been probed
    """
    args = ctx.args
    standard = args.standard
    if ctx.media is None or ctx.media.video.video is None:
        raise ValidationError(f"No video stream probed in {args.video}")

    video = ctx.media.video
    transform = resolve_frame_rate(video.video.frame_rate, standard)

    video_input = ["-i", str(args.video)]
    if transform.speed_change:
        # Reinterpret the source frames at the disc rate
        video_input = ["-r", standard.frame_rate, *video_input]

    inputs = [video_input]
    audio_options = []
    for index, track in enumerate(args.audio_tracks):
        inputs.append(["-i", str(track.path)])
        audio_options += ["-map", f"{index + 1}:a:0"]
    audio_options += _audio_codec_options()
    for index, track in enumerate(args.audio_tracks):
        audio_options += [f"-metadata:s:a:{index}", f"language={track.lang}"]

    burn_in = args.burn_in_subtitle
    params = EncodeParams(
        kind=ArtifactKind.MOVIE,
        standard=standard,
        inputs=inputs,
        output_path=ctx.paths.movie,
        filter_chain=build_filter_chain(
            ArtifactKind.MOVIE,
            standard,
            transform=transform,
            burn_in_subtitle=str(burn_in.path) if burn_in else None
        ),
        video_options=["-minrate", "1200k", "-maxrate", "9200k", "-flags", "+ildct+ilme"],
        audio_options=audio_options,
        force_keyframes=keyframe_expression(ctx.media.disc_chapters),
        audio_filter=build_audio_filter(transform, args.audio_offset),
        duration=video.duration,
    )

    if args.two_pass:
        budget = calculate_video_bitrate(
            video.duration,
            config.audio_kbps_per_track * len(args.audio_tracks),
            capacity_bytes=config.disc_capacity_bytes,
            headroom=config.capacity_headroom,
            max_kbps=config.max_video_kbps
        )
        params.two_pass = True
        params.video_bitrate_kbps = budget.video_bitrate_kbps
        params.pass_log = ctx.paths.pass_log
        params.budget = budget

    return params


def build_menu_params(ctx: Context, config: AppConfig) -> EncodeParams:
    """Looped still menu background with silence."""
    standard = ctx.args.standard
    duration = config.menu_duration_seconds

    return EncodeParams(
        kind=ArtifactKind.MENU,
        standard=standard,
        inputs=[
            ["-loop", "1", "-framerate", standard.frame_rate, "-i", str(ctx.paths.menu_png)],
            ["-f", "lavfi", "-i", SILENT_AUDIO],
        ],
        output_path=ctx.paths.raw_menu,
        filter_chain=build_filter_chain(ArtifactKind.MENU, standard),
        audio_options=["-map", "1:a:0", *_audio_codec_options()],
        output_options=["-t", str(duration)],
        duration=float(duration),
    )


class FFmpegEncoder:
    """Runs EncodeParams through ffmpeg."""

    def __init__(self, tools: ToolRunner):
        self.tools = tools

    def encode(
        self,
        params: EncodeParams,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> Path:
        """
        Encode one artifact.

        Args:
            params: Encoder parameter set
            progress_callback: Optional callback(progress: 0.0-1.0) across all passes

        Returns:
            Path to the encoded artifact

        Raises:
            ExternalToolError: If ffmpeg fails
        """
        params.output_path.parent.mkdir(parents=True, exist_ok=True)
        commands = params.commands()
        total = len(commands)

        for number, cmd in enumerate(commands):
            if total > 1:
                logger.info(f"Starting pass {number + 1} of {total} for {params.kind.value}")

            def pass_progress(progress: float, number=number):
                if progress_callback:
                    progress_callback((number + progress) / total)

            self.tools.run_ffmpeg(cmd, duration=params.duration, progress_callback=pass_progress)

        logger.info(f"Encoded {params.kind.value}: {params.output_path}")
        return params.output_path
