"""MP3 to OGG/Opus transcoding through the ``ffmpeg`` binary."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from roaster.errors import TranscodeError

logger = logging.getLogger(__name__)


class FfmpegTranscoder:
    """Runs ``ffmpeg`` to convert a file into Opus audio in an Ogg container.

    The binary is taken from *ffmpeg_bin*, then ``FFMPEG_BIN``, then
    ``ffmpeg`` on ``PATH``.
    """

    def __init__(
        self,
        ffmpeg_bin: Optional[str] = None,
        timeout: float = 30.0,
        codec: str = "libopus",
        container: str = "ogg",
    ) -> None:
        self.ffmpeg_bin = ffmpeg_bin or os.getenv("FFMPEG_BIN", "ffmpeg")
        self.timeout = timeout
        self.codec = codec
        self.container = container

    def command(self, src: Path, dst: Path) -> list[str]:
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", str(src),
            "-c:a", self.codec,
            "-f", self.container,
            str(dst),
        ]

    def transcode(self, src: Path, dst: Path) -> None:
        """Write the transcoded audio of *src* to *dst*."""
        cmd = self.command(src, dst)
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            logger.error("ffmpeg binary not found: %s", self.ffmpeg_bin)
            raise TranscodeError("Audio converter is not installed.") from exc
        except subprocess.TimeoutExpired as exc:
            logger.warning("ffmpeg timed out after %.1fs on %s", self.timeout, src)
            raise TranscodeError("Audio conversion timed out.") from exc
        except OSError as exc:
            raise TranscodeError(f"Audio converter could not run: {exc}") from exc

        if result.returncode != 0:
            logger.warning(
                "ffmpeg exited with %d: %s", result.returncode, (result.stderr or "").strip()[:500]
            )
            raise TranscodeError("Audio conversion failed.")
        if not dst.exists() or dst.stat().st_size == 0:
            raise TranscodeError("Audio conversion produced no output.")
