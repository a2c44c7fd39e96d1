"""Tests for encoder parameter sets and command assembly."""

import os
from pathlib import Path

import pytest

from discwright.config import AppConfig
from discwright.context import Context, DiscStandard, MediaSet, normalize_args
from discwright.deriver import ArtifactKind, scale_chapters_for_disc
from discwright.encoder import (
    EncodeParams,
    FFmpegEncoder,
    build_filler_params,
    build_intro_params,
    build_menu_params,
    build_movie_params,
)
from discwright.errors import UnsupportedFormatError, ValidationError

from conftest import FakeTools, audio_info, video_info


def make_context(tmp_path, frame_rate="25", duration=1830.0, **overrides) -> Context:
    options = {
        "video": "/media/movie.mkv",
        "audios": ["/media/en.wav", "/media/pl.wav"],
        "audio_languages": "en,pl",
        "still": "/media/still.jpg",
        "format": "pal",
        "output": str(tmp_path / "disc.iso"),
        "scratch": str(tmp_path / "work"),
    }
    options.update(overrides)
    ctx = Context.create(normalize_args(options))
    ctx.media = MediaSet(
        video=video_info("/media/movie.mkv", duration=duration, frame_rate=frame_rate),
        audios=[audio_info("/media/en.wav"), audio_info("/media/pl.wav")],
        chapters=[600.0, 1200.0, 1800.0],
    )
    ctx.media.disc_chapters = scale_chapters_for_disc(ctx.media.chapters, ctx.args.standard)
    return ctx


def value_after(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def test_movie_two_pass_commands(tmp_path):
    ctx = make_context(tmp_path)
    params = build_movie_params(ctx, AppConfig())
    pass1, pass2 = params.commands()

    assert params.budget.video_bitrate_kbps == params.video_bitrate_kbps
    assert value_after(pass1, "-b:v") == f"{params.video_bitrate_kbps}k"

    assert pass1[:4] == ["ffmpeg", "-y", "-i", "/media/movie.mkv"]
    assert "/media/en.wav" not in pass1
    assert pass1[-4:] == ["-an", "-f", "null", os.devnull]
    assert value_after(pass1, "-passlogfile") == str(ctx.paths.pass_log)

    assert value_after(pass2, "-passlogfile") == str(ctx.paths.pass_log)
    assert value_after(pass2, "-target") == "pal-dvd"
    assert value_after(pass2, "-c:a") == "ac3"
    assert value_after(pass2, "-force_key_frames") == "expr:gte(t,600)+gte(t,1200)+gte(t,1800)"
    assert value_after(pass2, "-metadata:s:a:0") == "language=en"
    assert value_after(pass2, "-metadata:s:a:1") == "language=pl"
    maps = [pass2[i + 1] for i, arg in enumerate(pass2) if arg == "-map"]
    assert maps == ["0:v:0", "1:a:0", "2:a:0"]
    assert pass2[-1] == str(ctx.paths.movie)


def test_movie_budget_counts_every_audio_track(tmp_path):
    ctx = make_context(tmp_path, duration=5400.0)
    params = build_movie_params(ctx, AppConfig())

    assert params.budget.audio_bytes_total == 302_400_000
    assert params.video_bitrate_kbps == 5679


def test_movie_one_pass(tmp_path):
    ctx = make_context(tmp_path, two_pass=False)
    params = build_movie_params(ctx, AppConfig())
    (cmd,) = params.commands()

    assert params.budget is None
    assert value_after(cmd, "-q:v") == "2"
    assert "-pass" not in cmd and "-b:v" not in cmd


def test_speed_change_reinterprets_input_rate(tmp_path):
    ctx = make_context(tmp_path, frame_rate="24")
    params = build_movie_params(ctx, AppConfig())
    cmd = params.commands()[1]

    assert cmd[2:6] == ["-r", "25", "-i", "/media/movie.mkv"]
    assert value_after(cmd, "-af") == "atempo=1.0416666666666667"


def test_unsupported_rate_raises(tmp_path):
    ctx = make_context(tmp_path, frame_rate="50")

    with pytest.raises(UnsupportedFormatError):
        build_movie_params(ctx, AppConfig())


def test_movie_without_probe_raises(tmp_path):
    ctx = make_context(tmp_path)
    ctx.media = None

    with pytest.raises(ValidationError):
        build_movie_params(ctx, AppConfig())


def test_filler_params(tmp_path):
    ctx = make_context(tmp_path)
    (cmd,) = build_filler_params(ctx, AppConfig()).commands()

    assert "color=c=black:s=720x576:r=25:d=1" in cmd
    assert any(arg.startswith("anullsrc") for arg in cmd)
    assert value_after(cmd, "-t") == "1"
    assert cmd[-1] == str(ctx.paths.filler)


def test_intro_params_use_own_audio(tmp_path):
    ctx = make_context(tmp_path, intro="/media/intro.mp4")
    ctx.media.intro = video_info("/media/intro.mp4", duration=12.0)
    params = build_intro_params(ctx)
    (cmd,) = params.commands()

    assert params.kind == ArtifactKind.INTRO
    assert "-shortest" not in cmd
    assert value_after(cmd, "-q:v") == "2"
    assert cmd[-1] == str(ctx.paths.intro)


def test_intro_params_require_probe(tmp_path):
    ctx = make_context(tmp_path)

    with pytest.raises(ValidationError):
        build_intro_params(ctx)


def test_menu_params(tmp_path):
    ctx = make_context(tmp_path, format="ntsc", frame_rate="30000/1001")
    (cmd,) = build_menu_params(ctx, AppConfig(menu_duration_seconds=20)).commands()

    assert cmd[2:8] == ["-loop", "1", "-framerate", "30000/1001", "-i", str(ctx.paths.menu_png)]
    assert value_after(cmd, "-target") == "ntsc-dvd"
    assert value_after(cmd, "-t") == "20"
    assert cmd[-1] == str(ctx.paths.raw_menu)


def test_two_pass_needs_bitrate():
    params = EncodeParams(
        kind=ArtifactKind.MOVIE,
        standard=DiscStandard.PAL,
        inputs=[["-i", "v"]],
        output_path=Path("out.mpg"),
        filter_chain="null",
        two_pass=True,
    )

    with pytest.raises(ValidationError):
        params.commands()


def test_encoder_reports_progress_across_passes(tmp_path):
    ctx = make_context(tmp_path)
    params = build_movie_params(ctx, AppConfig())
    tools = FakeTools()
    progress = []

    FFmpegEncoder(tools).encode(params, progress_callback=progress.append)

    assert len(tools.calls) == 2
    assert progress == [0.5, 1.0]
    assert ctx.paths.movie.exists()
