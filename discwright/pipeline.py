"""
Pipeline Module

Runs the fixed sequence of authoring stages against one Context: validate,
probe, chapters, filler, intro, main movie, menu, disc structure and disc
image. Every stage reuses its artifact when the cache says it is fresh, and
the first failure aborts the run.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .cache import ArtifactCache, fingerprint
from .config import AppConfig
from .context import AuthorArgs, Context, MediaSet, normalize_args
from .deriver import generate_chapters, scale_chapters_for_disc
from .encoder import (
    EncodeParams,
    FFmpegEncoder,
    build_filler_params,
    build_intro_params,
    build_menu_params,
    build_movie_params,
)
from .errors import AuthoringError, ProbeError, ValidationError
from .events import EventPublisher, NullPublisher
from .image_writer import DiscImageWriter
from .menu_builder import MenuBuilder, MenuConfig
from .probe import MediaProber
from .templates import render_dvd_xml, render_spu_xml, render_textsub_xml
from .tools import ToolRunner

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one authoring run."""
    success: bool
    disc_image: Optional[Path] = None
    output_dir: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class StageEnv:
    """Collaborators shared by every stage of a run."""
    config: AppConfig
    tools: ToolRunner
    prober: MediaProber
    encoder: FFmpegEncoder
    image_writer: DiscImageWriter
    cache: ArtifactCache
    events: EventPublisher
    menu_config: MenuConfig = field(default_factory=MenuConfig)


def _encode(
    ctx: Context,
    env: StageEnv,
    params: EncodeParams,
    label: str,
    extra_inputs: tuple = ()
) -> None:
    """Encode one artifact unless an identical build is already on disk."""
    artifact = params.output_path
    inputs = [arg for group in params.inputs for arg in group if Path(arg).is_file()]
    inputs += [str(path) for path in extra_inputs]
    key = fingerprint(params.commands(), inputs=tuple(inputs))

    if env.cache.is_fresh(artifact, key):
        env.events.log(f"{label} already built, skipping: {artifact.name}")
        return

    def on_progress(fraction: float):
        env.events.progress(round(fraction * 100, 1), 100, label)

    env.events.log(f"Encoding {label}...")
    env.cache.begin(artifact)
    env.encoder.encode(params, progress_callback=on_progress)
    env.cache.record(artifact, key)


def validate_inputs(ctx: Context, env: StageEnv) -> None:
    """Check every input file and create the working directories."""
    args = ctx.args
    inputs = [("video", args.video), ("still", args.still)]
    inputs += [(f"audio track {i + 1}", t.path) for i, t in enumerate(args.audio_tracks)]
    inputs += [(f"subtitle track {i + 1}", t.path) for i, t in enumerate(args.subtitle_tracks)]
    if args.intro:
        inputs.append(("intro", args.intro))

    for name, path in inputs:
        if not Path(path).is_file():
            raise ValidationError(f"Input {name} not found: {path}")

    ctx.paths.scratch_dir.mkdir(parents=True, exist_ok=True)
    ctx.paths.output_dir.mkdir(parents=True, exist_ok=True)
    env.events.log(f"Scratch directory: {ctx.paths.scratch_dir}")


def probe_media(ctx: Context, env: StageEnv) -> None:
    args = ctx.args
    probed = {}

    def probe(path):
        key = Path(path).resolve()
        if key not in probed:
            probed[key] = env.prober.probe(path)
        return probed[key]

    video = probe(args.video)
    if video.video is None:
        raise ProbeError(f"No video stream found in {args.video}")

    audios = []
    for track in args.audio_tracks:
        info = probe(track.path)
        if not info.has_audio:
            raise ProbeError(f"No audio stream found in {track.path}")
        audios.append(info)

    intro = probe(args.intro) if args.intro else None
    if intro is not None and intro.video is None:
        raise ProbeError(f"No video stream found in {args.intro}")

    ctx.media = MediaSet(video=video, audios=audios, intro=intro)

    stream = video.video
    env.events.log(
        f"Video: {video.duration:.2f}s, {stream.width}x{stream.height} "
        f"@ {stream.frame_rate}, {len(audios)} audio track(s)"
    )


def compute_chapters(ctx: Context, env: StageEnv) -> None:
    """
    Derive chapter points and the movie encode plan.

    The movie plan is derived here so an unsupported frame rate or an
    impossible bitrate budget fails before any encoder runs.
    """
    media = ctx.media
    media.chapters = generate_chapters(
        media.video.duration,
        interval=env.config.chapter_interval_seconds,
        buffer=env.config.chapter_buffer_seconds
    )
    media.disc_chapters = scale_chapters_for_disc(media.chapters, ctx.args.standard)
    env.events.log(f"Chapters: {len(media.chapters)} point(s) {media.disc_chapters}")

    params = build_movie_params(ctx, env.config)
    ctx.encode_params["movie"] = params

    budget = params.budget
    if ctx.args.two_pass and (budget is None or budget.video_bitrate_kbps <= 0):
        audio_bytes = budget.audio_bytes_total if budget else 0
        raise ValidationError(
            f"No room for video: {media.video.duration:.0f}s of programme with "
            f"{audio_bytes} bytes of audio leaves no bitrate for a two-pass encode"
        )
    if budget is not None:
        env.events.log(
            f"Available capacity: {budget.available_capacity_bytes} bytes, "
            f"audio: {budget.audio_bytes_total} bytes, "
            f"video: {budget.video_bytes_available} bytes"
        )
        suffix = " (capped)" if budget.capped else ""
        env.events.log(f"Video bitrate{suffix}: {budget.video_bitrate_kbps} kbps")


def build_filler(ctx: Context, env: StageEnv) -> None:
    params = build_filler_params(ctx, env.config)
    ctx.encode_params["filler"] = params
    _encode(ctx, env, params, "filler")


def build_intro(ctx: Context, env: StageEnv) -> None:
    if not ctx.args.intro:
        env.events.log("No intro provided, using filler as intro")
        return

    params = build_intro_params(ctx)
    ctx.encode_params["intro"] = params
    _encode(ctx, env, params, "intro")


def build_main(ctx: Context, env: StageEnv) -> None:
    """Encode the movie, then multiplex each subtitle track onto it in order."""
    paths = ctx.paths
    burn_in = ctx.args.burn_in_subtitle
    extra = (burn_in.path,) if burn_in else ()
    _encode(ctx, env, ctx.encode_params["movie"], "movie", extra_inputs=extra)
    ctx.movie_path = paths.movie

    tracks = ctx.args.muxed_subtitle_tracks
    if not tracks:
        return

    standard = ctx.args.standard
    width, height = standard.resolution
    documents = [
        render_textsub_xml(track.path, standard, movie_width=width, movie_height=height)
        for track in tracks
    ]

    key = fingerprint(
        documents, inputs=(paths.movie, *(track.path for track in tracks))
    )
    if env.cache.is_fresh(paths.muxed_movie, key):
        env.events.log(f"Subtitled movie already built, skipping: {paths.muxed_movie.name}")
        ctx.movie_path = paths.muxed_movie
        return

    env.cache.begin(paths.muxed_movie)
    source = paths.movie
    for index, (track, document) in enumerate(zip(tracks, documents)):
        last = index == len(tracks) - 1
        target = paths.muxed_movie if last else paths.subtitle_step(index)

        xml_path = paths.subtitle_xml(index)
        xml_path.write_text(document, encoding="utf-8")

        env.events.log(f"Multiplexing subtitle {index + 1}/{len(tracks)} ({track.lang})")
        env.tools.run(
            ["spumux", "-m", "dvd", "-s", str(index), str(xml_path)],
            stdin_path=source,
            stdout_path=target
        )
        source = target

    env.cache.record(paths.muxed_movie, key)
    ctx.movie_path = paths.muxed_movie


def build_menu(ctx: Context, env: StageEnv) -> None:
    """Render the menu still and masks, encode it and overlay the play button."""
    paths = ctx.paths
    builder = MenuBuilder(ctx.args.standard, env.menu_config)
    buttons = [builder.play_button()]

    params = build_menu_params(ctx, env.config)
    ctx.encode_params["menu"] = params
    document = render_spu_xml(paths.menu_normal, paths.menu_highlight, paths.menu_select, buttons)

    key = fingerprint(
        {"commands": params.commands(), "spu": document, "menu": repr(env.menu_config)},
        inputs=(ctx.args.still,)
    )
    if env.cache.is_fresh(paths.menu, key):
        env.events.log(f"Menu already built, skipping: {paths.menu.name}")
        return

    env.cache.begin(paths.menu)
    builder.generate_menu_background(ctx.args.still, paths.menu_png, buttons)
    builder.generate_masks(buttons, paths.menu_normal, paths.menu_highlight, paths.menu_select)

    env.events.log("Encoding menu...")
    env.encoder.encode(params)

    paths.menu_spu_xml.write_text(document, encoding="utf-8")
    env.tools.run(
        ["spumux", "-m", "dvd", str(paths.menu_spu_xml)],
        stdin_path=paths.raw_menu,
        stdout_path=paths.menu
    )
    env.cache.record(paths.menu, key)


def author_disc(ctx: Context, env: StageEnv) -> None:
    """Write the disc description and author the VIDEO_TS tree."""
    args = ctx.args
    paths = ctx.paths

    document = render_dvd_xml(
        args.standard,
        menu_path=paths.menu,
        movie_path=ctx.movie_path,
        filler_path=paths.filler,
        intro_path=paths.intro,
        chapters=ctx.media.disc_chapters,
        audio_tracks=args.audio_tracks,
        subtitle_tracks=args.muxed_subtitle_tracks
    )
    paths.dvd_xml.write_text(document, encoding="utf-8")

    ifo = paths.disc_dir / "VIDEO_TS" / "VIDEO_TS.IFO"
    stamp = paths.scratch_dir / "dvd.fingerprint"
    key = fingerprint(
        document, inputs=(paths.menu, ctx.movie_path, paths.filler, paths.intro)
    )
    ctx.artifacts.disc_dir = paths.disc_dir

    if env.cache.is_fresh(ifo, key, stamp=stamp):
        env.events.log("Disc structure already authored, skipping")
        return

    env.cache.begin(ifo, stamp=stamp)
    if paths.disc_dir.exists():
        # dvdauthor adds titlesets to an existing tree
        shutil.rmtree(paths.disc_dir)

    env.events.log("Authoring DVD structure...")
    env.tools.run(["dvdauthor", "-o", str(paths.disc_dir), "-x", str(paths.dvd_xml)])
    env.cache.record(ifo, key, stamp=stamp)


def write_image(ctx: Context, env: StageEnv) -> None:
    paths = ctx.paths
    ifo = paths.disc_dir / "VIDEO_TS" / "VIDEO_TS.IFO"
    key = fingerprint({"volume": ctx.args.volume_name}, inputs=(ifo,))

    if env.cache.is_fresh(paths.output_iso, key):
        env.events.log(f"Disc image already written, skipping: {paths.output_iso}")
        ctx.artifacts.disc_image = paths.output_iso
        return

    def on_progress(progress: float, status: str):
        env.events.progress(round(progress * 100, 1), 100, status)

    env.cache.begin(paths.output_iso)
    env.image_writer.create_iso(
        paths.disc_dir,
        paths.output_iso,
        volume_label=ctx.args.volume_name,
        progress_callback=on_progress
    )
    env.cache.record(paths.output_iso, key)
    ctx.artifacts.disc_image = paths.output_iso


Stage = Callable[[Context, StageEnv], None]

STAGES: tuple[tuple[str, Stage], ...] = (
    ("validate", validate_inputs),
    ("probe", probe_media),
    ("chapters", compute_chapters),
    ("filler", build_filler),
    ("intro", build_intro),
    ("main", build_main),
    ("menu", build_menu),
    ("dvd", author_disc),
    ("iso", write_image),
)


class Pipeline:
    """
    Executes the authoring stages in order against a fresh Context.

    Collaborators default to the real tool runner, prober and image writer;
    tests inject fakes.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        tools: Optional[ToolRunner] = None,
        prober: Optional[MediaProber] = None,
        image_writer: Optional[DiscImageWriter] = None,
        menu_config: Optional[MenuConfig] = None
    ):
        self.config = config or AppConfig()
        self.tools = tools or ToolRunner()
        self.prober = prober or MediaProber()
        self.image_writer = image_writer or DiscImageWriter(self.tools)
        self.menu_config = menu_config or MenuConfig()

    def run(self, args: AuthorArgs, events: Optional[EventPublisher] = None) -> RunResult:
        """
        Author one disc.

        Args:
            args: Normalized run arguments
            events: Publisher receiving log and progress events

        Returns:
            RunResult; failures are reported in it rather than raised
        """
        events = events or NullPublisher(args.job_id)
        ctx = Context.create(args)
        env = StageEnv(
            config=self.config,
            tools=self.tools,
            prober=self.prober,
            encoder=FFmpegEncoder(self.tools),
            image_writer=self.image_writer,
            cache=ArtifactCache(force_rebuild=args.force_rebuild),
            events=events,
            menu_config=self.menu_config,
        )

        events.time("authoring")
        try:
            for number, (name, stage) in enumerate(STAGES, start=1):
                events.progress(number - 1, len(STAGES), f"Stage {name}")
                events.time(name)
                stage(ctx, env)
                events.time_end(name)
        except AuthoringError as e:
            events.log(f"Stage {name} failed: {e}", "error")
            return RunResult(success=False, output_dir=ctx.artifacts.output_dir, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in stage {name}")
            events.log(f"Stage {name} failed: {e}", "error")
            return RunResult(success=False, output_dir=ctx.artifacts.output_dir, error=str(e))

        events.progress(len(STAGES), len(STAGES), "Done")
        events.time_end("authoring")
        events.log(f"Disc image ready: {ctx.artifacts.disc_image}")
        return RunResult(
            success=True,
            disc_image=ctx.artifacts.disc_image,
            output_dir=ctx.artifacts.output_dir
        )


def author(
    options: dict,
    config: Optional[AppConfig] = None,
    events: Optional[EventPublisher] = None,
    **collaborators
) -> RunResult:
    """
    Normalize request options and run the pipeline once.

    Args:
        options: Request options (see context.normalize_args)
        config: Application configuration
        events: Publisher receiving log and progress events
        **collaborators: tools, prober, image_writer or menu_config overrides

    Returns:
        RunResult describing the disc image or the failure
    """
    try:
        args = normalize_args(options)
    except ValidationError as e:
        if events:
            events.log(str(e), "error")
        return RunResult(success=False, error=str(e))

    return Pipeline(config, **collaborators).run(args, events)
