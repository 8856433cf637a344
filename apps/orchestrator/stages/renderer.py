"""Lecture videos via ffmpeg: a still title card looped over the narration."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Sequence

from coursemill.core.config import RenderConfig
from coursemill.core.content import ContentArtifact

from ..collaborators import AudioFile, RenderResult, VideoFile
from ..errors import RenderError
from .slides import render_card

LOGGER = logging.getLogger(__name__)


def build_still_video_cmd(binary: str, image: Path, audio: Path, output: Path, *, width: int, height: int) -> List[str]:
    return [
        binary,
        "-y",
        "-loop", "1",
        "-i", str(image),
        "-i", str(audio),
        "-c:v", "libx264",
        "-tune", "stillimage",
        "-vf", f"scale={width}:{height}",
        "-c:a", "aac",
        "-b:a", "192k",
        "-pix_fmt", "yuv420p",
        "-shortest",
        str(output),
    ]


class FFmpegRenderer:
    """Renders ``videos/lecture-NN.mp4`` for every narrated lecture."""

    def __init__(
        self,
        config: RenderConfig,
        *,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._config = config
        self._run = run
        self._which = which

    def render(self, artifact: ContentArtifact, workspace: Path, audio_files: Sequence[AudioFile]) -> RenderResult:
        binary = self._which(self._config.ffmpeg_binary)
        if binary is None:
            raise RenderError(f"ffmpeg binary not found: {self._config.ffmpeg_binary}")

        lectures = list(artifact.lectures())
        videos_dir = workspace / "videos"
        videos_dir.mkdir(parents=True, exist_ok=True)
        files: List[VideoFile] = []
        for audio in audio_files:
            lecture = lectures[audio.lecture_index - 1] if 0 < audio.lecture_index <= len(lectures) else None
            card = render_card(
                videos_dir / f"lecture-{audio.lecture_index:02d}.png",
                lecture.title if lecture else f"Lecture {audio.lecture_index}",
                artifact.metadata.title,
                width=self._config.width,
                height=self._config.height,
            )
            output = videos_dir / f"lecture-{audio.lecture_index:02d}.mp4"
            cmd = build_still_video_cmd(
                binary, card, audio.path, output, width=self._config.width, height=self._config.height
            )
            try:
                result = self._run(cmd, capture_output=True, text=True, timeout=self._config.timeout_seconds)
            except (OSError, subprocess.TimeoutExpired) as exc:
                LOGGER.warning("ffmpeg failed for lecture %s: %s", audio.lecture_index, exc)
                continue
            if result.returncode != 0 or not output.exists():
                LOGGER.warning("ffmpeg error for lecture %s: %s", audio.lecture_index, (result.stderr or "")[-500:])
                continue
            files.append(VideoFile(lecture_index=audio.lecture_index, path=output))

        return RenderResult(video_files=tuple(files), successful_count=len(files), total_count=len(audio_files))


__all__ = ["FFmpegRenderer", "build_still_video_cmd"]
