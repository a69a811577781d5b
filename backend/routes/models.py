"""Pydantic request/response models for API endpoints."""

from typing import Any

from pydantic import BaseModel


class CreateConversation(BaseModel):
    title: str
    language: str = ""


class SelectBody(BaseModel):
    message_id: str
    option_id: str


class InputBody(BaseModel):
    message_id: str
    text: str


class UpdateVariables(BaseModel):
    variables: dict[str, Any]


class RefreshBody(BaseModel):
    language: str = ""
