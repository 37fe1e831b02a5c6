"""Base agent for single round-trip generation steps."""

import logging
from typing import Any, Dict, Optional

from app.config import Settings, settings
from app.errors import AutomationError
from app.schemas.generation import CompletionRequest

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "ru": "Russian",
    "kk": "Kazakh",
    "en": "English",
}


def language_name(language: Optional[str]) -> str:
    """Natural-language name for a channel language code, defaulting to Russian."""
    return LANGUAGE_NAMES.get(language or "", LANGUAGE_NAMES["ru"])


def fill_template(template: str, values: Dict[str, Any]) -> str:
    """Substitute every ``{{KEY}}`` placeholder present in ``values``."""
    text = template or ""
    for key, value in values.items():
        text = text.replace("{{" + key + "}}", str(value))
    return text


def preview(text: str, limit: int = 200) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class BaseAgent:
    """Base class for generation agents.

    Subclasses implement ``_run``; ``execute`` adds logging and lets typed
    automation errors propagate to the channel caller unchanged.
    """

    TEMPERATURE = 0.7
    MAX_TOKENS = 1000
    JSON_MODE = False

    def __init__(self, llm_client, config: Settings = settings):
        """Initialize base agent."""
        self.llm = llm_client
        self.config = config

    @property
    def model(self) -> str:
        return self.config.LLM_MODEL

    def execute(self, **kwargs) -> Any:
        """
        Run the agent once.

        Raises:
            AutomationError: Any pipeline failure, unchanged
        """
        name = self.__class__.__name__
        try:
            result = self._run(**kwargs)
        except AutomationError as e:
            logger.error(f"Agent {name} failed: {type(e).__name__}: {e}")
            raise

        if not self._validate(result):
            logger.warning(f"Agent {name} produced a result that failed validation")
        return result

    def _complete(self, system: str, user: str, temperature: Optional[float] = None) -> str:
        request = CompletionRequest(
            model=self.model,
            system=system,
            user=user,
            temperature=self.TEMPERATURE if temperature is None else temperature,
            max_tokens=self.MAX_TOKENS,
            json_mode=self.JSON_MODE,
        )
        content = self.llm.complete(request)
        logger.info(f"Raw response: {preview(content or '')}")
        return content

    def _run(self, **kwargs) -> Any:
        """Run the agent logic (to be implemented by subclasses)."""
        raise NotImplementedError

    def _validate(self, result: Any) -> bool:
        """Validate the agent output (to be overridden by subclasses)."""
        return True
