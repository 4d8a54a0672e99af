from pydantic import BaseModel, Field
from typing import List, Literal


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)


class ChatReply(BaseModel):
    message: str


class AudiobookRequest(BaseModel):
    text: str
    voice: str = "alloy"


class ExtractedText(BaseModel):
    filename: str
    text: str
    characters: int
