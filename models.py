# models.py
from pydantic import BaseModel, Field
from typing import Optional

class ChatPost(BaseModel):
    user: Optional[str] = Field(None, description="Author of the message")
    text: Optional[str] = Field(None, description="Message text")

class ChatMessage(BaseModel):
    author: str
    text: str
    timestamp: str = Field(..., description="ISO-8601 UTC time the message was received")

class ForgiveRequest(BaseModel):
    address: Optional[str] = Field(None, description="Wallet address to unlink")

class LookupResponse(BaseModel):
    discordId: str

class MessageResponse(BaseModel):
    message: str

class LoginResponse(BaseModel):
    authorization_url: str
    state: str

class HealthResponse(BaseModel):
    status: str = "ok"
    discord_configured: bool

class ErrorResponse(BaseModel):
    error: str
    code: str
