from pydantic import BaseModel
from typing import List, Optional

from .conversation import ConversationState, LifecycleState, MessageRole


class RenderedMessage(BaseModel):
    role: MessageRole
    html: str
    has_form: bool = False


class WidgetView(BaseModel):
    """Everything a front end needs to paint the widget at one instant"""
    title: str
    theme_color: str
    avatar_url: Optional[str] = None
    placeholder_text: str = "Message..."
    show_branding: bool = True
    load_error: Optional[str] = None
    conversation_state: Optional[ConversationState] = None
    lifecycle_state: LifecycleState
    is_typing: bool = False
    can_end_chat: bool = False
    faq_suggestions: List[str] = []
    messages: List[RenderedMessage] = []
    form_html: Optional[str] = None
    notifications: List[str] = []
