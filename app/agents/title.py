"""Standalone title agent."""

import logging
from typing import Optional

from app.agents.base import BaseAgent, language_name, preview
from app.errors import ServiceError
from app.services.output_parser import MAX_TITLE_LENGTH, clean_title

logger = logging.getLogger(__name__)


class TitleAgent(BaseAgent):
    """Agent for generating one short title for an existing video prompt."""

    TEMPERATURE = 0.8
    MAX_TOKENS = 100
    JSON_MODE = False

    def build_system_prompt(self, channel_name: Optional[str], language: str) -> str:
        system = (
            "You come up with short titles for viral vertical videos (YouTube Shorts, TikTok, Reels). "
            f"Based on the video description, write ONE catchy title in {language_name(language)}, "
            f"no longer than {MAX_TITLE_LENGTH} characters. Do not use quotes, emoji or hashtags. "
            "Return only the title itself, without explanations."
        )
        if channel_name:
            system += (
                f"\n\nChannel context: {channel_name}. "
                "Match the style and subject of the channel."
            )
        return system

    def _run(self, prompt: str, channel_name: Optional[str] = None, language: str = "ru") -> str:
        """Generate and clean a title."""
        logger.info(f"Generating title for prompt: {preview(prompt, 100)}")

        content = self._complete(
            self.build_system_prompt(channel_name, language),
            f"Video description:\n{prompt}",
            temperature=self.config.TITLE_TEMPERATURE,
        )
        if not content or not content.strip():
            raise ServiceError("Generation service returned an empty response")

        title = clean_title(content)
        logger.info(f"Generated title: {title}")
        return title

    def _validate(self, result: str) -> bool:
        return 0 < len(result) <= MAX_TITLE_LENGTH
