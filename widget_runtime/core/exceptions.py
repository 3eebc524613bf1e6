"""
Custom exceptions for the widget runtime.
"""
from typing import Dict, Optional


class WidgetError(Exception):
    """Base exception for widget runtime errors"""
    pass


class ConfigLoadError(WidgetError):
    """Raised when the widget configuration cannot be loaded"""
    user_message = "Failed to load chatbot"


class ChatbotNotFoundError(ConfigLoadError):
    """Raised when the tenant is unknown to the widget API"""
    user_message = "Chatbot not found"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Chatbot '{tenant_id}' not found")


class ServiceUnavailableError(ConfigLoadError):
    """Raised on transport failure or a non-404 error status"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MessageSendError(WidgetError):
    """Raised when a chat message could not be delivered or answered"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(MessageSendError):
    """Raised when the widget API answers 429"""
    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, status_code=429)


class FormSubmitError(WidgetError):
    """Raised when a form submission fails server-side or in transit"""
    def __init__(self, form_id: str, message: str, status_code: Optional[int] = None):
        self.form_id = form_id
        self.status_code = status_code
        super().__init__(f"Form '{form_id}' submission failed: {message}")


class EndConversationError(WidgetError):
    """Raised when the end-conversation call fails; always swallowed by callers"""
    def __init__(self, conversation_id: str, message: str):
        self.conversation_id = conversation_id
        super().__init__(f"Ending conversation '{conversation_id}' failed: {message}")


class FormValidationError(WidgetError):
    """Raised when a form fails local validation"""
    def __init__(self, form_id: str, field_errors: Dict[str, str]):
        self.form_id = form_id
        self.field_errors = field_errors
        super().__init__(f"Form '{form_id}' has {len(field_errors)} invalid field(s)")


class InvalidTransitionError(WidgetError):
    """Raised when an event is not allowed in the current conversation state"""
    def __init__(self, state: str, event: str):
        self.state = state
        self.event = event
        super().__init__(f"Event '{event}' not allowed in state '{state}'")


class ConversationBusyError(InvalidTransitionError):
    """Raised when a send is attempted while another request is in flight"""
    def __init__(self):
        super().__init__("sending", "submit")


class StorageError(WidgetError):
    """Raised by storage backends when a read or write fails"""
    pass
