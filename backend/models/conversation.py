"""Conversation data models."""
from dataclasses import dataclass

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass
class Turn:
    """One message of a conversation, as fed back into prompts."""
    role: str  # "user" or "assistant"
    content: str
