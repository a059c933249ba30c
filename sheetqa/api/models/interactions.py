"""
Interaction API Models

Pydantic models for the inbound chat-platform interaction payload and the
synchronous responses sent back on the admission path.

Only the fields the bot reads are modelled; everything else the platform
sends is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sheetqa.core.config.constants import EPHEMERAL_MESSAGE_FLAG, InteractionResponseType


class CommandOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    value: Any = None


class CommandData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    options: list[CommandOption] = Field(default_factory=list)


class Interaction(BaseModel):
    """
    Inbound interaction.

    ``token`` is required for command interactions only (PING carries one
    too, but it is never used).
    """

    model_config = ConfigDict(extra="ignore")

    type: int
    id: str | None = None
    token: str | None = None
    data: CommandData | None = None

    def question(self) -> str | None:
        """Text of the first command option, stripped; None when absent or blank."""
        if self.data is None or not self.data.options:
            return None
        value = self.data.options[0].value
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


class InteractionResponse(BaseModel):
    """Synchronous reply to an interaction."""

    type: InteractionResponseType
    data: dict[str, Any] | None = None

    @classmethod
    def pong(cls) -> "InteractionResponse":
        return cls(type=InteractionResponseType.PONG)

    @classmethod
    def deferred(cls) -> "InteractionResponse":
        return cls(type=InteractionResponseType.DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE)

    @classmethod
    def ephemeral(cls, content: str) -> "InteractionResponse":
        return cls(
            type=InteractionResponseType.CHANNEL_MESSAGE_WITH_SOURCE,
            data={"content": content, "flags": EPHEMERAL_MESSAGE_FLAG},
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
