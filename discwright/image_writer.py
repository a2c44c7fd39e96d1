"""
Image Writer Module

This module turns an authored DVD structure (VIDEO_TS folder) into an ISO
image. It prefers mkisofs/genisoimage, uses hdiutil on macOS and falls
back to pycdlib when neither is installed.
"""

import logging
import platform
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import pycdlib
from pycdlib.pycdlibexception import PyCdlibException

from .errors import ExternalToolError, ValidationError
from .tools import ToolRunner

logger = logging.getLogger(__name__)

MAX_VOLUME_LABEL = 32


class ImageTool(Enum):
    """Ways of writing the disc image."""
    MKISOFS = "mkisofs"
    HDIUTIL = "hdiutil"
    PYCDLIB = "pycdlib"


class DiscImageWriter:
    """
    Cross-platform ISO creation for DVD-Video structures.

    Automatically picks the writer:
    - mkisofs / genisoimage with -dvd-video when installed
    - hdiutil makehybrid on macOS
    - pycdlib (pure Python, ISO9660 + UDF) otherwise
    """

    def __init__(self, tools: ToolRunner):
        self.tools = tools

    def _select_tool(self) -> tuple[ImageTool, Optional[str]]:
        """Pick the best available image writer."""
        for name in ("mkisofs", "genisoimage"):
            if shutil.which(name):
                return ImageTool.MKISOFS, name

        if platform.system().lower() == "darwin" and shutil.which("hdiutil"):
            return ImageTool.HDIUTIL, "hdiutil"

        return ImageTool.PYCDLIB, None

    def create_iso(
        self,
        dvd_structure_dir: Path,
        output_path: Path,
        volume_label: str = "DVD_VIDEO",
        progress_callback: Optional[Callable[[float, str], None]] = None
    ) -> Path:
        """
        Create an ISO image from a DVD structure directory.

        Args:
            dvd_structure_dir: Directory holding VIDEO_TS (and AUDIO_TS)
            output_path: Output ISO path
            volume_label: Volume label for the ISO (truncated to 32 chars)
            progress_callback: Optional callback(progress: 0-1, status: str)

        Returns:
            Path to created ISO file

        Raises:
            ValidationError: If the structure directory has no VIDEO_TS
            ExternalToolError: If the image writer fails
        """
        dvd_structure_dir = Path(dvd_structure_dir)
        output_path = Path(output_path)
        volume_label = (volume_label or "DVD_VIDEO")[:MAX_VOLUME_LABEL]

        if not (dvd_structure_dir / "VIDEO_TS").is_dir():
            raise ValidationError(f"No VIDEO_TS folder in {dvd_structure_dir}")

        output_path.parent.mkdir(parents=True, exist_ok=True)

        if progress_callback:
            progress_callback(0.0, "Starting ISO creation...")

        tool, name = self._select_tool()

        if tool == ImageTool.MKISOFS:
            self.tools.run([
                name,
                "-dvd-video",
                "-V", volume_label,
                "-o", str(output_path),
                str(dvd_structure_dir)
            ], timeout=3600)
        elif tool == ImageTool.HDIUTIL:
            self.tools.run([
                "hdiutil", "makehybrid",
                "-udf",
                "-udf-volume-name", volume_label,
                "-o", str(output_path),
                str(dvd_structure_dir)
            ], timeout=3600)
        else:
            self._create_iso_pycdlib(dvd_structure_dir, output_path, volume_label, progress_callback)

        if not output_path.exists():
            raise ExternalToolError(f"Disc image was not created: {output_path}", tool=tool.value)

        if progress_callback:
            progress_callback(1.0, "ISO created successfully")

        logger.info(f"Created ISO with {tool.value}: {output_path}")
        return output_path

    def _create_iso_pycdlib(
        self,
        source_dir: Path,
        output_path: Path,
        volume_label: str,
        progress_callback: Optional[Callable[[float, str], None]] = None
    ) -> None:
        """Create ISO using pycdlib (pure Python writer)."""
        if progress_callback:
            progress_callback(0.1, "Creating ISO with pycdlib...")

        iso = pycdlib.PyCdlib()
        iso.new(
            interchange_level=3,
            vol_ident=volume_label.upper(),
            preparer_ident_str="discwright",
            app_ident_str="discwright DVD authoring",
            udf="2.60"
        )

        files = sorted(p for p in source_dir.rglob("*") if p.is_file())
        directories = sorted(p for p in source_dir.rglob("*") if p.is_dir())

        try:
            for directory in directories:
                rel = directory.relative_to(source_dir)
                iso_dir = "/" + "/".join(part.upper() for part in rel.parts)
                iso.add_directory(iso_path=iso_dir, udf_path="/" + "/".join(rel.parts))

            for processed, file_path in enumerate(files, start=1):
                rel = file_path.relative_to(source_dir)
                iso_file = "/" + "/".join(part.upper() for part in rel.parts) + ";1"
                iso.add_file(
                    str(file_path),
                    iso_path=iso_file,
                    udf_path="/" + "/".join(rel.parts)
                )
                if progress_callback:
                    progress_callback(
                        0.1 + 0.8 * (processed / len(files)), f"Adding: {rel.name}"
                    )

            iso.write(str(output_path))
        except PyCdlibException as e:
            raise ExternalToolError(f"pycdlib failed: {e}", tool="pycdlib") from e
        finally:
            iso.close()


def check_image_writer() -> dict[str, bool]:
    """Check for available ISO creation tools."""
    return {
        "mkisofs": shutil.which("mkisofs") is not None,
        "genisoimage": shutil.which("genisoimage") is not None,
        "hdiutil": shutil.which("hdiutil") is not None,
        "pycdlib": True,
    }
