# musicdash/models/chat_models.py
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from musicdash.models.playback_models import Track


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: ChatRole
    content: str
    suggestions: List[Track] = Field(default_factory=list)


# /api/chat relay
class RelayMessage(BaseModel):
    role: ChatRole
    content: str


class ChatRelayRequest(BaseModel):
    messages: List[RelayMessage]


class ChatRelayResponse(BaseModel):
    role: ChatRole = ChatRole.ASSISTANT
    content: str


# /api/chat/messages
class ChatTurnRequest(BaseModel):
    message: str = Field(min_length=1)


class TranscriptResponse(BaseModel):
    messages: List[ChatMessage]
