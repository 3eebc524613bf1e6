from pydantic import BaseModel, Field, AliasChoices
from typing import Dict, Any, List, Optional

from .form import FormSchema


class FAQ(BaseModel):
    id: Optional[str] = None
    question: str
    answer: Optional[str] = None


class WidgetConfig(BaseModel):
    """Widget configuration returned by GET /widget/{tenant}/config"""
    chatbot_id: Optional[str] = None
    name: str
    theme_color: str = "#3b82f6"
    welcome_message: Optional[str] = Field(
        None, validation_alias=AliasChoices("welcome_message", "first_message")
    )
    avatar_url: Optional[str] = None
    faqs: List[FAQ] = []
    widget_button_color: Optional[str] = None
    widget_button_text: Optional[str] = None
    placeholder_text: Optional[str] = None
    is_active: bool = True
    hide_branding: bool = False
    forms: List[Dict[str, Any]] = []

    class Config:
        populate_by_name = True
        extra = "ignore"


# Request Schemas
class WidgetMessageRequest(BaseModel):
    visitor_id: str
    message: str
    conversation_id: Optional[str] = None


class FormSubmitRequest(BaseModel):
    form_id: str
    submitted_data: Dict[str, Any]
    conversation_id: Optional[str] = None
    visitor_id: str


# Response Schemas
class WidgetMessageResponse(BaseModel):
    conversation_id: str
    message: str
    form_data: Optional[FormSchema] = None

    class Config:
        extra = "ignore"


class FormSubmitResponse(BaseModel):
    message: Optional[str] = None
    success: bool = True

    class Config:
        extra = "ignore"
