"""Narration script generation via OpenAI with structured output."""

from __future__ import annotations

import json
import logging

from openai import OpenAI, OpenAIError

from slidecast.errors import ProviderError

logger = logging.getLogger(__name__)

_MIN_SECONDS_PER_SCENE = 4.0
_PAD_SUFFIX = "The story continues to unfold with breathtaking detail."

_SYSTEM_PROMPT = (
    "You are a professional scriptwriter specializing in visual storytelling for "
    "documentaries and promotional videos. Create engaging, detailed narratives that "
    "provide sufficient content for the specified duration. Return JSON matching the "
    "provided schema."
)


def fit_segments(scripts: list[str], count: int) -> list[str]:
    """Trim or pad ``scripts`` to exactly ``count`` segments.

    Padding repeats the last segment with a continuation sentence.
    """
    segments = [s.strip() for s in scripts if s and s.strip()][:count]
    while len(segments) < count:
        last = segments[-1] if segments else "Continuing the visual journey..."
        segments.append(f"{last} {_PAD_SUFFIX}")
    return segments


class ScriptWriter:
    """Writes one narration segment per image.

    Args:
        api_key: OpenAI API key.
        model: Chat model name.
        client: Pre-built OpenAI client (tests pass a fake).
    """

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini", client: OpenAI | None = None) -> None:
        self.model = model
        self.client = client or OpenAI(api_key=api_key)

    def generate_script(
        self,
        topic: str,
        image_count: int,
        min_duration: float = 60.0,
    ) -> tuple[list[str], float]:
        """Generate ``image_count`` narration segments about ``topic``.

        Returns:
            (segments, total_duration) where total_duration is the target
            narration length in seconds.
        """
        per_scene = max(min_duration / image_count, _MIN_SECONDS_PER_SCENE)
        total_duration = per_scene * image_count

        schema = {
            "type": "object",
            "properties": {
                "scripts": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": image_count,
                    "maxItems": image_count,
                },
            },
            "required": ["scripts"],
            "additionalProperties": False,
        }

        user_prompt = (
            f'Create a compelling, professional narrative script for a {total_duration:g}-second '
            f'video about "{topic}".\n\n'
            f"The video has {image_count} scenes, each lasting approximately {per_scene:.1f} seconds.\n\n"
            f"Requirements:\n"
            f"- Write {image_count} distinct narrative segments that tell a cohesive story\n"
            f"- Each segment should be 2-3 sentences to fill {per_scene:.1f} seconds of narration\n"
            f"- Use documentary-style language that complements visual imagery\n"
            f"- Ensure smooth transitions between scenes\n"
        )

        logger.info("Generating script for %r: %d scenes, %.0fs", topic, image_count, total_duration)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.7,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "narration",
                        "strict": True,
                        "schema": schema,
                    },
                },
            )
        except OpenAIError as exc:
            raise ProviderError(f"Failed to generate script: {exc}") from exc

        content = response.choices[0].message.content
        if not content:
            raise ProviderError("No content received from OpenAI")

        try:
            scripts = json.loads(content)["scripts"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderError(f"Malformed script response: {content[:200]}") from exc

        if len(scripts) != image_count:
            logger.warning("Expected %d segments, got %d; adjusting", image_count, len(scripts))

        segments = fit_segments(scripts, image_count)
        logger.info("Generated %d script segment(s)", len(segments))
        return segments, total_duration
