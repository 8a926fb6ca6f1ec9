"""Typed view of the model provider's response envelope.

Only the parts we read are modelled. Output items and message content parts
are tagged unions on ``type``; an item of an unknown kind or a missing field
fails validation instead of being skipped.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _EnvelopeModel(BaseModel):
    # The provider adds ids, status flags and annotations we do not use
    model_config = ConfigDict(extra="ignore")


class OutputText(_EnvelopeModel):
    type: Literal["output_text"]
    text: str


class Refusal(_EnvelopeModel):
    type: Literal["refusal"]
    refusal: str


MessageContent = Annotated[Union[OutputText, Refusal], Field(discriminator="type")]


class MessageItem(_EnvelopeModel):
    type: Literal["message"]
    role: str = "assistant"
    content: list[MessageContent]


class ReasoningItem(_EnvelopeModel):
    type: Literal["reasoning"]


OutputItem = Annotated[Union[MessageItem, ReasoningItem], Field(discriminator="type")]


class ResponseEnvelope(_EnvelopeModel):
    """Top level of a Responses API reply."""

    output: list[OutputItem]

    def first_message(self) -> MessageItem | None:
        for item in self.output:
            if isinstance(item, MessageItem):
                return item
        return None

    def output_text(self) -> str | None:
        """
        Text of the first ``output_text`` part of the first message item.

        Returns:
            The text, or None if there is no message, it holds no text part,
            or the text is empty
        """
        message = self.first_message()
        if message is None:
            return None
        for part in message.content:
            if isinstance(part, OutputText):
                return part.text or None
        return None

    def refusal(self) -> str | None:
        message = self.first_message()
        if message is None:
            return None
        for part in message.content:
            if isinstance(part, Refusal):
                return part.refusal
        return None
