from pydantic import BaseModel
from typing import Optional


class ErrorResponse(BaseModel):
    """Body returned for application errors"""
    code: str
    detail: str
    details: Optional[dict] = None


class MessageResponse(BaseModel):
    message: str
