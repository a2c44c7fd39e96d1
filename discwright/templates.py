"""
Templates Module

Fills the fixed description documents handed to the authoring tools:
the dvdauthor disc structure, spumux text-subtitle streams and the spumux
button overlay for the menu.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
from xml.sax.saxutils import escape

from .context import AudioTrack, DiscStandard, SubtitleTrack
from .deriver import format_timestamp
from .errors import TemplateError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DVD_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<dvdauthor jumppad="yes">
  <vmgm>
    <fpc>jump titleset 1 title 1;</fpc>
  </vmgm>
  <titleset>
    <menus>
      <video format="{format}" aspect="16:9" widescreen="nopanscan"/>
      <pgc entry="root">
        <vob file="{menu_path}" pause="inf"/>
        <button name="play">jump title 2;</button>
      </pgc>
    </menus>
    <titles>
      <video format="{format}" aspect="16:9" widescreen="nopanscan"/>
{title_stream_tags}
      <pgc>
        <vob file="{filler_path}"/>
        <vob file="{intro_path}"/>
        <post>call menu;</post>
      </pgc>
      <pgc>
        <vob file="{movie_path}" chapters="{chapters}"/>
        <vob file="{filler_path}"/>
        <post>call menu;</post>
      </pgc>
    </titles>
  </titleset>
</dvdauthor>
"""

TEXTSUB_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<subpictures>
  <stream>
    <textsub
      filename="{subtitle_path}"
      characterset="{character_set}"
      subtitle-fps="{movie_fps}"
      movie-fps="{movie_fps}"
      movie-width="{movie_width}"
      movie-height="{movie_height}"
      aspect="{aspect}"
    />
  </stream>
</subpictures>
"""

SPU_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<subpictures>
  <stream>
    <spu force="yes" start="00:00:00.00" image="{normal_path}" highlight="{highlight_path}" select="{select_path}">
{buttons}
    </spu>
  </stream>
</subpictures>
"""


@dataclass(frozen=True)
class ButtonBox:
    """Interactive menu button area in menu pixel coordinates."""
    name: str
    x0: int
    y0: int
    x1: int
    y1: int


def _attr(value) -> str:
    return escape(str(value), {'"': "&quot;"})


def _validated(document: str, kind: str) -> str:
    """Ensure the rendered document is well-formed XML."""
    try:
        ET.fromstring(document.encode("utf-8"))
    except ET.ParseError as e:
        raise TemplateError(f"Rendered {kind} XML is malformed: {e}") from e
    return document


def _language(track, kind: str, index: int) -> str:
    lang = getattr(track, "lang", None)
    if not isinstance(lang, str) or not lang.strip():
        raise TemplateError(f"Missing language for {kind} track {index + 1}")
    return lang.strip()


def render_dvd_xml(
    standard: DiscStandard,
    menu_path: Optional[PathLike],
    movie_path: Optional[PathLike],
    filler_path: Optional[PathLike],
    intro_path: Optional[PathLike],
    chapters: Sequence[float],
    audio_tracks: Sequence[AudioTrack],
    subtitle_tracks: Sequence[SubtitleTrack] = ()
) -> str:
    """
    Render the dvdauthor disc-structure description.

    The first-play program runs the intro, then the root menu offers the
    movie title; both titles return to the menu.

    Args:
        standard: Disc standard of every video stream
        menu_path: Menu program stream (with button overlay)
        movie_path: Main movie program stream
        filler_path: Black spacer program stream
        intro_path: Intro program stream (may equal filler_path)
        chapters: Chapter points already adjusted for the disc standard
        audio_tracks: Audio tracks in stream order
        subtitle_tracks: Multiplexed subtitle tracks in stream order

    Returns:
        dvdauthor XML

    Raises:
        TemplateError: If a path or a language is missing
    """
    if not menu_path or not movie_path or not filler_path:
        raise TemplateError("Missing required paths for DVD XML generation")
    if not audio_tracks:
        raise TemplateError("At least one audio track is required for DVD XML generation")

    stream_tags = [
        f'      <audio lang="{_attr(_language(t, "audio", i))}" content="normal"/>'
        for i, t in enumerate(audio_tracks)
    ]
    stream_tags += [
        f'      <subpicture lang="{_attr(_language(t, "subtitle", i))}"/>'
        for i, t in enumerate(subtitle_tracks)
    ]
    chapter_list = ",".join(["0", *(format_timestamp(t) for t in chapters)])

    document = DVD_TEMPLATE.format(
        format=standard.value,
        menu_path=_attr(menu_path),
        movie_path=_attr(movie_path),
        filler_path=_attr(filler_path),
        intro_path=_attr(intro_path or filler_path),
        chapters=chapter_list,
        title_stream_tags="\n".join(stream_tags),
    )
    return _validated(document, "dvdauthor")


def render_textsub_xml(
    subtitle_path: Optional[PathLike],
    standard: DiscStandard,
    movie_width: int = 720,
    movie_height: Optional[int] = None,
    aspect: str = "16:9",
    character_set: str = "UTF-8"
) -> str:
    """
    Render a spumux description for one text subtitle track.

    Raises:
        TemplateError: If the subtitle path is missing
    """
    if not subtitle_path:
        raise TemplateError("Missing required subtitle path for textsub XML generation")

    if movie_height is None:
        movie_height = standard.resolution[1]

    document = TEXTSUB_TEMPLATE.format(
        subtitle_path=_attr(subtitle_path),
        character_set=_attr(character_set),
        movie_fps=standard.frame_rate,
        movie_width=movie_width,
        movie_height=movie_height,
        aspect=_attr(aspect),
    )
    return _validated(document, "textsub")


def render_spu_xml(
    normal_path: Optional[PathLike],
    highlight_path: Optional[PathLike],
    select_path: Optional[PathLike],
    buttons: Sequence[ButtonBox]
) -> str:
    """
    Render the spumux button overlay description for the menu.

    Raises:
        TemplateError: If an image path or button coordinates are missing
    """
    if not normal_path or not highlight_path or not select_path:
        raise TemplateError("Missing required paths for spu XML generation")
    if not buttons:
        raise TemplateError("Button coordinates must contain at least one entry")

    button_lines = []
    for button in buttons:
        coords = (button.x0, button.y0, button.x1, button.y1)
        if not button.name or any(c is None for c in coords):
            raise TemplateError(f"Incomplete button definition: {button}")
        if button.x1 <= button.x0 or button.y1 <= button.y0:
            raise TemplateError(f"Empty button area: {button}")
        button_lines.append(
            f'      <button name="{_attr(button.name)}" '
            f'x0="{button.x0}" y0="{button.y0}" x1="{button.x1}" y1="{button.y1}"/>'
        )

    document = SPU_TEMPLATE.format(
        normal_path=_attr(normal_path),
        highlight_path=_attr(highlight_path),
        select_path=_attr(select_path),
        buttons="\n".join(button_lines),
    )
    return _validated(document, "spu")
