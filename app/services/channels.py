"""Channel registry collaborator."""

import logging
from pathlib import Path
from typing import Iterable, List, Protocol

from pydantic import TypeAdapter

from app.errors import ConfigError
from app.schemas.generation import ChannelTemplate

logger = logging.getLogger(__name__)

_CHANNEL_LIST = TypeAdapter(List[ChannelTemplate])


class ChannelRegistry(Protocol):
    """Read-only source of channel templates."""

    def list_enabled_channels(self) -> List[ChannelTemplate]: ...

    def count_enabled_channels(self) -> int: ...


class InMemoryChannelRegistry:
    """Registry over a fixed list of channels."""

    def __init__(self, channels: Iterable[ChannelTemplate] = ()):
        self._channels = list(channels)

    def list_enabled_channels(self) -> List[ChannelTemplate]:
        return [c for c in self._channels if c.automation_enabled]

    def count_enabled_channels(self) -> int:
        return len(self.list_enabled_channels())


def load_channel_registry(path: str) -> InMemoryChannelRegistry:
    """
    Load channel templates from a JSON list.

    An empty path yields an empty registry.

    Raises:
        ConfigError: If the file cannot be read or does not hold valid templates
    """
    if not path:
        return InMemoryChannelRegistry()

    try:
        channels = _CHANNEL_LIST.validate_json(Path(path).read_bytes())
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot load channels from {path}: {e}") from e

    logger.info(f"Loaded {len(channels)} channels from {path}")
    return InMemoryChannelRegistry(channels)
