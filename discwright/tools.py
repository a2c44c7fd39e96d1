"""
Tools Module

Discovery and execution of the external programs that do the actual media
work: ffmpeg/ffprobe, spumux, dvdauthor and the ISO writers.
"""

import logging
import platform
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .errors import ExternalToolError

logger = logging.getLogger(__name__)

# Only the tail of stderr ends up in error messages
STDERR_TAIL_CHARS = 2000


def _tail(text: str) -> str:
    text = (text or "").strip()
    if len(text) > STDERR_TAIL_CHARS:
        return "..." + text[-STDERR_TAIL_CHARS:]
    return text


class ToolRunner:
    """
    Runs external tools and turns failures into ExternalToolError.

    Every command is a list whose first element is the tool name; the name
    is resolved on PATH before the process starts.
    """

    def __init__(self):
        self._paths: dict[str, str] = {}

    def find(self, tool: str) -> str:
        """
        Find a tool binary on PATH.

        Raises:
            ExternalToolError: If the tool is not installed
        """
        if tool in self._paths:
            return self._paths[tool]

        path = shutil.which(tool)
        if not path:
            raise ExternalToolError(
                f"{tool} not found. Please install it.\n{get_dependency_instructions()}",
                tool=tool
            )
        self._paths[tool] = path
        return path

    def run(
        self,
        cmd: list[str],
        stdin_path: Optional[Path] = None,
        stdout_path: Optional[Path] = None,
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None
    ) -> str:
        """
        Run a tool to completion.

        Args:
            cmd: Command, tool name first
            stdin_path: File fed to the tool's standard input
            stdout_path: File receiving the tool's standard output
            cwd: Working directory
            timeout: Seconds before the tool is killed

        Returns:
            Captured standard output (empty when redirected to a file)

        Raises:
            ExternalToolError: If the tool is missing, fails or times out
        """
        tool = cmd[0]
        argv = [self.find(tool), *cmd[1:]]
        logger.debug(f"Running: {' '.join(str(a) for a in argv)}")

        stdin = open(stdin_path, "rb") if stdin_path else None
        stdout = open(stdout_path, "wb") if stdout_path else subprocess.PIPE
        try:
            result = subprocess.run(
                argv,
                stdin=stdin,
                stdout=stdout,
                stderr=subprocess.PIPE,
                cwd=cwd,
                timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalToolError(f"{tool} timed out after {timeout}s", tool=tool) from e
        except (subprocess.SubprocessError, OSError) as e:
            raise ExternalToolError(f"{tool} could not be started: {e}", tool=tool) from e
        finally:
            if stdin:
                stdin.close()
            if stdout_path:
                stdout.close()

        stderr = result.stderr.decode(errors="replace") if result.stderr else ""
        if result.returncode != 0:
            raise ExternalToolError(
                f"{tool} failed with code {result.returncode}: {_tail(stderr)}",
                tool=tool,
                returncode=result.returncode
            )

        if stdout_path:
            return ""
        return result.stdout.decode(errors="replace") if result.stdout else ""

    def run_ffmpeg(
        self,
        cmd: list[str],
        duration: float = 0.0,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> None:
        """
        Run ffmpeg, reporting progress parsed from -progress output.

        Args:
            cmd: ffmpeg command (tool name first, without -progress flags)
            duration: Expected output duration for progress fractions
            progress_callback: Optional callback(progress: 0.0-1.0)

        Raises:
            ExternalToolError: If ffmpeg is missing or fails
        """
        argv = [self.find(cmd[0]), "-progress", "pipe:1", "-nostats", *cmd[1:]]
        logger.debug(f"Command: {' '.join(str(a) for a in argv)}")

        with tempfile.TemporaryFile() as errfile:
            try:
                process = subprocess.Popen(
                    argv,
                    stdout=subprocess.PIPE,
                    stderr=errfile,
                    text=True
                )
            except (subprocess.SubprocessError, OSError) as e:
                raise ExternalToolError(f"ffmpeg could not be started: {e}", tool="ffmpeg") from e

            # Parse progress output
            for line in process.stdout:
                if not line.startswith("out_time_us="):
                    continue
                try:
                    time_us = int(line.split("=")[1].strip())
                except ValueError:
                    continue
                if duration > 0 and progress_callback:
                    progress_callback(min(1.0, time_us / 1_000_000 / duration))

            return_code = process.wait()

            if return_code != 0:
                errfile.seek(0)
                stderr = errfile.read().decode(errors="replace")
                raise ExternalToolError(
                    f"FFmpeg failed with code {return_code}: {_tail(stderr)}",
                    tool="ffmpeg",
                    returncode=return_code
                )

        if progress_callback:
            progress_callback(1.0)


def check_dependencies() -> dict[str, bool]:
    """
    Check for required system dependencies.

    Returns:
        Dictionary of dependency names and their availability
    """
    return {
        "ffmpeg": shutil.which("ffmpeg") is not None,
        "ffprobe": shutil.which("ffprobe") is not None,
        "spumux": shutil.which("spumux") is not None,
        "dvdauthor": shutil.which("dvdauthor") is not None,
        "mkisofs": (shutil.which("mkisofs") or shutil.which("genisoimage")) is not None,
    }


def get_dependency_instructions() -> str:
    """Get installation instructions for missing dependencies."""
    system = platform.system().lower()

    if system == "linux":
        return """
Install dependencies on Ubuntu/Debian:
    sudo apt update
    sudo apt install ffmpeg dvdauthor genisoimage

Install dependencies on Fedora:
    sudo dnf install ffmpeg dvdauthor genisoimage
"""
    elif system == "darwin":
        return """
Install dependencies on macOS using Homebrew:
    brew install ffmpeg dvdauthor cdrtools
"""
    else:
        return "Please install ffmpeg, dvdauthor (with spumux) and mkisofs for your system."
