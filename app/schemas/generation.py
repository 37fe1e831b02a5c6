"""Generation pipeline input/output schemas."""

from typing import Literal

from pydantic import BaseModel

Language = Literal["ru", "kk", "en"]


class ChannelTemplate(BaseModel):
    """Read-only channel configuration consumed by the pipeline."""

    id: str
    name: str
    description: str = ""
    language: Language = "ru"
    duration_seconds: int = 8
    idea_prompt_template: str
    video_prompt_template: str
    automation_enabled: bool = False


class Idea(BaseModel):
    """Candidate content concept."""

    id: str
    title: str
    description: str = ""


class PromptResult(BaseModel):
    """Final generation artifact derived from an idea."""

    veo_prompt: str
    video_title: str


class CompletionRequest(BaseModel):
    """Single round trip to the generation service."""

    model: str
    system: str
    user: str
    temperature: float = 0.7
    max_tokens: int = 1000
    json_mode: bool = False
