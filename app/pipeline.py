"""Content generation pipeline."""

import logging
from typing import List, Optional

from app.agents.ideas import IdeaAgent
from app.agents.title import TitleAgent
from app.agents.veo_prompt import VeoPromptAgent
from app.config import Settings, settings
from app.schemas.generation import ChannelTemplate, Idea, PromptResult
from app.services.llm_client import LLMClient

logger = logging.getLogger(__name__)


class GenerationPipeline:
    """Idea, prompt and title generation against one shared LLM client.

    Every method makes exactly one round trip to the generation service and
    raises ConfigError, ServiceError, ParseError, MissingFieldError or
    EmptyResultError on failure. Each failure is scoped to the caller's
    current channel.
    """

    def __init__(self, llm_client, config: Settings = settings):
        self.llm_client = llm_client
        self.config = config
        self.ideas = IdeaAgent(llm_client, config)
        self.veo_prompt = VeoPromptAgent(llm_client, config)
        self.title = TitleAgent(llm_client, config)

    def generate_ideas(
        self,
        channel: ChannelTemplate,
        theme: Optional[str] = None,
        count: int = 5,
    ) -> List[Idea]:
        return self.ideas.execute(channel=channel, theme=theme, count=count)

    def generate_veo_prompt(self, channel: ChannelTemplate, idea: Idea) -> PromptResult:
        return self.veo_prompt.execute(channel=channel, idea=idea)

    def generate_title(
        self,
        prompt: str,
        channel_name: Optional[str] = None,
        language: str = "ru",
    ) -> str:
        return self.title.execute(prompt=prompt, channel_name=channel_name, language=language)


def build_pipeline(config: Settings = settings) -> GenerationPipeline:
    """Construct the LLM client once and wire it into a pipeline.

    Raises:
        ConfigError: If the generation service is not configured
    """
    client = LLMClient(config)
    logger.info(f"Generation pipeline ready (model: {config.LLM_MODEL})")
    return GenerationPipeline(client, config)
