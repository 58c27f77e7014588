"""Prompt data types shared by the model client and the context assembler."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Speaker(str, Enum):
    """Author of a prompt message."""

    HUMAN = "HUMAN"
    ASSISTANT = "ASSISTANT"


@dataclass
class Message:
    """A single prompt or memory turn."""

    speaker: Speaker
    text: str
    file_name: str | None = None

    @classmethod
    def human(cls, text: str, file_name: str | None = None) -> "Message":
        return cls(Speaker.HUMAN, text, file_name)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(Speaker.ASSISTANT, text)

    @property
    def is_human(self) -> bool:
        return self.speaker is Speaker.HUMAN

    def to_wire(self, lowercase_speaker: bool = False) -> dict[str, Any]:
        """Serialize as a completions API message, which has no file name.

        The streaming endpoint expects lower-case speakers while the GraphQL
        endpoint expects the enum names.
        """
        speaker = self.speaker.value
        return {
            "speaker": speaker.lower() if lowercase_speaker else speaker,
            "text": self.text,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize for chat history, keeping the file the turn came from."""
        data = self.to_wire()
        if self.file_name:
            data["fileName"] = self.file_name
        return data


@dataclass
class CompletionParameters:
    """Sampling parameters and prompt for one model call."""

    messages: list[Message]
    temperature: float = 0.2
    max_tokens_to_sample: int = 1000
    top_k: int = -1
    top_p: int = -1

    def to_variables(self, lowercase_speaker: bool = False) -> dict[str, Any]:
        return {
            "messages": [
                m.to_wire(lowercase_speaker=lowercase_speaker) for m in self.messages
            ],
            "temperature": self.temperature,
            "maxTokensToSample": self.max_tokens_to_sample,
            "topK": self.top_k,
            "topP": self.top_p,
        }

    @property
    def priming_text(self) -> str:
        """Text of the final message, which the model continues from."""
        return self.messages[-1].text if self.messages else ""
