"""Narration track synthesis: OpenAI TTS or a D-ID talking avatar.

With OpenAI TTS every beat's script is spoken as its own line and placed at
the beat's start, so narration follows the picture timeline. The avatar
engine renders all lines as one talk.

If the configured engine fails and silent fallback is enabled, a silent
track of the timeline length is rendered instead and the result is marked
``degraded`` so callers can report it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Sequence

from openai import OpenAI, OpenAIError

from slidecast.cancel import raise_if_cancelled
from slidecast.commands import (
    MASTER_PROFILE,
    EncodeProfile,
    build_silence_command,
    build_voice_track_command,
)
from slidecast.did_client import DIDClient
from slidecast.encoder import EncoderRunner
from slidecast.errors import (
    MissingAssetError,
    PollTimeoutError,
    ProviderError,
    RemoteRenderError,
)
from slidecast.models import Beat, NarrationResult, VideoConfig

logger = logging.getLogger(__name__)

_FALLBACK_ERRORS = (ProviderError, RemoteRenderError, PollTimeoutError)


class Narrator:
    """Produces one narration file for a run.

    Args:
        config: Video settings; ``voice_engine``, ``voice`` and
            ``presenter_id`` select the provider.
        runner: Encoder runner for the voice track mix and the silent fallback.
        openai_client: Client for the openai-tts engine.
        did_client: Client for the d-id engine.
        allow_silent_fallback: Substitute silence when the provider fails.
        tts_model: OpenAI speech model.
    """

    def __init__(
        self,
        config: VideoConfig,
        runner: EncoderRunner,
        openai_client: OpenAI | None = None,
        did_client: DIDClient | None = None,
        allow_silent_fallback: bool = False,
        tts_model: str = "tts-1-hd",
        profile: EncodeProfile = MASTER_PROFILE,
    ) -> None:
        self.config = config
        self.runner = runner
        self.openai_client = openai_client
        self.did_client = did_client
        self.allow_silent_fallback = allow_silent_fallback
        self.tts_model = tts_model
        self.profile = profile

    def _synthesize_speech(self, text: str, output: Path) -> Path:
        if self.openai_client is None:
            raise ProviderError("OpenAI client not configured for openai-tts narration")
        logger.info("Generating speech: model=%s, voice=%s, %d chars", self.tts_model, self.config.voice, len(text))
        try:
            response = self.openai_client.audio.speech.create(
                model=self.tts_model,
                voice=self.config.voice,
                input=text,
                response_format="mp3",
            )
        except OpenAIError as exc:
            raise ProviderError(f"Failed to generate speech: {exc}") from exc
        output.write_bytes(response.content)
        logger.info("Audio saved: %s (%d bytes)", output, output.stat().st_size)
        return output

    async def _avatar(self, text: str, audio_dir: Path, cancel: asyncio.Event | None) -> Path:
        if self.did_client is None:
            raise ProviderError("D-ID client not configured for d-id narration")
        url = await self.did_client.generate_avatar_video(text, self.config.presenter_id, cancel)
        return await self.did_client.download_file(url, audio_dir / "narration_avatar.mp4")

    async def _voice_track(
        self,
        spoken: Sequence[Beat],
        audio_dir: Path,
        cancel: asyncio.Event | None,
    ) -> Path:
        line_paths = []
        for beat in spoken:
            raise_if_cancelled(cancel, "narration")
            line = audio_dir / f"line_{beat.index:02d}.mp3"
            line_paths.append(await asyncio.to_thread(self._synthesize_speech, beat.script.strip(), line))

        output = audio_dir / "narration.m4a"
        await self.runner.run(build_voice_track_command(line_paths, spoken, output, self.profile), cancel)
        return output

    async def narrate(
        self,
        beats: Sequence[Beat],
        audio_dir: Path,
        duration: float,
        cancel: asyncio.Event | None = None,
    ) -> NarrationResult:
        """Render the beats' scripts into a narration file in ``audio_dir``.

        Args:
            beats: Beat sheet with scripts attached; beats without a script
                stay silent.
            audio_dir: Run-scoped directory for audio assets.
            duration: Timeline length, used for the silent fallback.
            cancel: Run-level cancellation signal.
        """
        spoken = [b for b in beats if b.script and b.script.strip()]
        if not spoken:
            raise MissingAssetError("No scripts provided for narration")

        audio_dir.mkdir(parents=True, exist_ok=True)
        engine = self.config.voice_engine
        try:
            if engine == "d-id":
                text = " ".join(b.script.strip() for b in spoken)
                path = await self._avatar(text, audio_dir, cancel)
            else:
                path = await self._voice_track(spoken, audio_dir, cancel)
        except _FALLBACK_ERRORS as exc:
            if not self.allow_silent_fallback:
                raise
            logger.warning("Narration via %s failed (%s); using a silent track", engine, exc)
            path = audio_dir / "narration_silent.m4a"
            await self.runner.run(build_silence_command(path, duration, self.profile), cancel)
            return NarrationResult(path=str(path), engine=engine, degraded=True, detail=str(exc))

        return NarrationResult(path=str(path), engine=engine)
