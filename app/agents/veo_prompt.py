"""Video prompt agent."""

import logging

from app.agents.base import BaseAgent, fill_template, language_name, preview
from app.errors import ServiceError
from app.schemas.generation import ChannelTemplate, Idea, PromptResult
from app.services.output_parser import extract_prompt

logger = logging.getLogger(__name__)


class VeoPromptAgent(BaseAgent):
    """Agent for turning an idea into a Veo prompt and a video title."""

    TEMPERATURE = 0.7
    MAX_TOKENS = 1000
    JSON_MODE = True

    def build_prompt(self, channel: ChannelTemplate, idea: Idea) -> str:
        return fill_template(
            channel.video_prompt_template,
            {
                "IDEA_TEXT": f"{idea.title}. {idea.description}",
                "IDEA_TITLE": idea.title,
                "IDEA_DESCRIPTION": idea.description,
                "DURATION": channel.duration_seconds,
                "LANGUAGE": channel.language,
            },
        )

    def build_system_prompt(self, channel: ChannelTemplate) -> str:
        lang = language_name(channel.language)
        return (
            "You write prompts for short videos. Always answer strictly as JSON with the fields "
            f"veo_prompt (a prompt for Veo 3.1 Fast written in {lang}) and "
            f"video_title (a YouTube title written in {lang})."
        )

    def _run(self, channel: ChannelTemplate, idea: Idea) -> PromptResult:
        """Generate the final prompt and title for one idea."""
        prompt = self.build_prompt(channel, idea)
        logger.info(f"Generating Veo prompt (language: {channel.language}): {preview(prompt)}")

        content = self._complete(
            self.build_system_prompt(channel),
            prompt,
            temperature=self.config.PROMPT_TEMPERATURE,
        )
        if not content:
            raise ServiceError("Generation service returned an empty response")

        result = extract_prompt(content, idea.title).unwrap()
        logger.info("Generated Veo prompt and title")
        return result
