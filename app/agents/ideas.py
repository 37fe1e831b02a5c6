"""Idea generation agent."""

import logging
import time
from typing import List, Optional

from app.agents.base import BaseAgent, fill_template, preview
from app.errors import ServiceError
from app.schemas.generation import ChannelTemplate, Idea
from app.services.output_parser import extract_ideas

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You generate ideas for short vertical videos. Always answer strictly as a JSON "
    "array of objects with the fields title and description."
)

JSON_INSTRUCTION = "Return the answer strictly as JSON: an array of objects with the fields title and description."


class IdeaAgent(BaseAgent):
    """Agent for generating candidate video ideas from a channel template."""

    TEMPERATURE = 0.9
    MAX_TOKENS = 2000
    JSON_MODE = True

    def build_prompt(self, channel: ChannelTemplate, theme: Optional[str] = None) -> str:
        prompt = fill_template(
            channel.idea_prompt_template,
            {
                "DURATION": channel.duration_seconds,
                "LANGUAGE": channel.language,
                "DESCRIPTION": channel.description,
            },
        )

        if theme and theme.strip():
            prompt += f"\n\nAdditional theme to use: {theme.strip()}"

        if "JSON" not in prompt:
            prompt += f"\n\n{JSON_INSTRUCTION}"

        return prompt

    def _run(self, channel: ChannelTemplate, theme: Optional[str] = None, count: int = 5) -> List[Idea]:
        """Generate up to ``count`` ideas for a channel."""
        if count < 1:
            raise ValueError("count must be at least 1")

        prompt = self.build_prompt(channel, theme)
        logger.info(f"Generating ideas for channel {channel.id} with prompt: {preview(prompt)}")

        content = self._complete(SYSTEM_PROMPT, prompt, temperature=self.config.IDEA_TEMPERATURE)
        if not content:
            raise ServiceError("Generation service returned an empty response")

        ideas = extract_ideas(content, count, int(time.time() * 1000)).unwrap()
        logger.info(f"Generated {len(ideas)} ideas")
        return ideas

    def _validate(self, result: List[Idea]) -> bool:
        """Validate ideas exist and ids are distinct."""
        return len(result) > 0 and len({idea.id for idea in result}) == len(result)
