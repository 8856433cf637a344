"""HTTP client for an OpenAI-compatible text-to-speech service."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Callable, List

import httpx

from coursemill.core.config import NarrationConfig
from coursemill.core.content import ContentArtifact

from ..collaborators import AudioFile, NarrationResult
from ..errors import ServiceUnavailableError

LOGGER = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150


def chunk_text(text: str, max_chars: int) -> List[str]:
    """Split narration on sentence boundaries into chunks of at most `max_chars`.

    A single sentence longer than the limit is hard-split.
    """

    chunks: List[str] = []
    current = ""
    for sentence in re.split(r"(?<=[.!?])\s+", text.strip()):
        if not sentence:
            continue
        while len(sentence) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        candidate = f"{current} {sentence}".strip()
        if len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def estimate_minutes(text: str) -> float:
    return round(len(text.split()) / WORDS_PER_MINUTE, 2)


class SpeechNarrator:
    """Narrates every lecture script into ``audio/lecture-NN.<format>``.

    Chunks are sent one at a time with a short delay so a single-GPU service
    is not flooded. A lecture whose request fails is skipped; the others
    still produce audio.
    """

    def __init__(
        self,
        config: NarrationConfig,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep
        if client is None:
            self._client = httpx.Client(base_url=config.resolved_api_base(), timeout=config.timeout_seconds)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def health(self) -> bool:
        try:
            response = self._client.get("/health", timeout=5.0)
        except httpx.HTTPError as exc:
            LOGGER.warning("TTS health check failed: %s", exc)
            return False
        return response.status_code == 200

    def narrate(self, artifact: ContentArtifact, workspace: Path) -> NarrationResult:
        if not self.health():
            raise ServiceUnavailableError(f"TTS service not reachable at {self._client.base_url}")

        audio_dir = workspace / "audio"
        audio_dir.mkdir(parents=True, exist_ok=True)
        lectures = list(artifact.lectures())
        files: List[AudioFile] = []
        for index, lecture in enumerate(lectures, start=1):
            text = lecture.script.text()
            if not text:
                LOGGER.warning("Lecture %s has no script; skipping narration", index)
                continue
            path = audio_dir / f"lecture-{index:02d}.{self._config.response_format}"
            try:
                path.write_bytes(self._synthesize(text))
            except httpx.HTTPError as exc:
                LOGGER.warning("Narration failed for lecture %s: %s", index, exc)
                continue
            files.append(AudioFile(lecture_index=index, path=path, duration=estimate_minutes(text)))
            LOGGER.info("Narrated lecture %s/%s", index, len(lectures), extra={"path": str(path)})

        return NarrationResult(audio_files=tuple(files), successful_count=len(files), total_count=len(lectures))

    def _synthesize(self, text: str) -> bytes:
        audio = bytearray()
        for position, chunk in enumerate(chunk_text(text, self._config.max_chunk_chars)):
            if position > 0 and self._config.chunk_delay_seconds > 0:
                self._sleep(self._config.chunk_delay_seconds)
            response = self._client.post(
                "/v1/audio/speech",
                json={
                    "model": self._config.model,
                    "input": chunk,
                    "voice": self._config.voice,
                    "response_format": self._config.response_format,
                },
            )
            response.raise_for_status()
            audio.extend(response.content)
        return bytes(audio)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = ["SpeechNarrator", "WORDS_PER_MINUTE", "chunk_text", "estimate_minutes"]
