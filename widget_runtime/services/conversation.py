"""
Conversation state machine for the embedded widget.

One enumerated state replaces scattered busy/submitting/ending flags:

    IDLE --submit--> SENDING --reply--> IDLE
                             --reply_with_form--> FORM_PENDING
                             --failure--> IDLE
    FORM_PENDING --submit / submit_form--> SENDING
    any --end--> ENDED --reset--> IDLE

Only one request is ever in flight, so replies are appended in the order
their requests were issued. A second send while SENDING is rejected here,
not by a disabled button. Replies that arrive after the conversation ended
are dropped.
"""
import asyncio
from typing import Dict, List, Optional, Tuple

from ..core.config import settings
from ..core.exceptions import (
    ConversationBusyError,
    FormSubmitError,
    FormValidationError,
    InvalidTransitionError,
    MessageSendError,
    RateLimitedError,
    WidgetError,
)
from ..core.logging_config import get_logger, log_conversation_event, set_widget_context
from ..schemas.conversation import (
    ConversationState,
    Message,
    MessageRole,
    Notification,
    SendOutcome,
    SendStatus,
)
from ..schemas.form import FormSchema
from .form_validator import FormSession
from .identity_store import IdentityStore
from .widget_client import WidgetApiClient

logger = get_logger("conversation")

SEND_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."
RATE_LIMIT_MESSAGE = "I'm currently experiencing high demand. Please try again in a moment."
FORM_ERROR_MESSAGE = "Sorry, there was an error submitting your form. Please try again."
FORM_SUCCESS_FALLBACK = "Thank you for submitting the form!"
PREVIEW_MESSAGE = (
    "This is preview mode. The chatbot will respond with actual AI "
    "when it's active and embedded on your website."
)

S = ConversationState

TRANSITIONS: Dict[Tuple[ConversationState, str], ConversationState] = {
    (S.IDLE, "submit"): S.SENDING,
    (S.FORM_PENDING, "submit"): S.SENDING,
    (S.FORM_PENDING, "submit_form"): S.SENDING,
    (S.SENDING, "reply"): S.IDLE,
    (S.SENDING, "reply_with_form"): S.FORM_PENDING,
    (S.SENDING, "failure"): S.IDLE,
    (S.IDLE, "end"): S.ENDED,
    (S.SENDING, "end"): S.ENDED,
    (S.FORM_PENDING, "end"): S.ENDED,
    (S.ENDED, "end"): S.ENDED,
    (S.ENDED, "reset"): S.IDLE,
}


class ConversationStateMachine:
    """Owns the transcript, the single in-flight request and the live form"""

    def __init__(
        self,
        tenant_id: str,
        visitor_id: str,
        client: WidgetApiClient,
        store: IdentityStore,
        welcome_message: str,
        conversation_id: Optional[str] = None,
        request_timeout: Optional[float] = None,
        preview_mode: bool = False,
    ):
        self.tenant_id = tenant_id
        self.visitor_id = visitor_id
        self.client = client
        self.store = store
        self.request_timeout = request_timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.preview_mode = preview_mode

        self.state = ConversationState.IDLE
        self.conversation_id = conversation_id
        self.transcript: List[Message] = []
        self.notifications: List[Notification] = []
        self.form_session: Optional[FormSession] = None

        self._lock = asyncio.Lock()
        # Bumped on end(); a reply tagged with an older epoch belongs to an ended conversation
        self._epoch = 0

        self._append(MessageRole.AGENT, welcome_message)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _transition(self, event: str) -> ConversationState:
        if event in ("submit", "submit_form") and self.state == S.SENDING:
            raise ConversationBusyError()
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            raise InvalidTransitionError(self.state.value, event)
        logger.debug(f"Conversation state {self.state.value} -> {target.value} on {event}")
        self.state = target
        return target

    def _append(self, role: MessageRole, content: str, form: Optional[FormSchema] = None) -> Message:
        message = Message(role=role, content=content, attached_form=form)
        self.transcript.append(message)
        return message

    def _notify(self, level: str, text: str) -> None:
        self.notifications.append(Notification(level=level, text=text))

    def _adopt_conversation_id(self, conversation_id: str) -> None:
        if self.conversation_id is None:
            self.conversation_id = conversation_id
            self.store.set_conversation_handle(self.tenant_id, conversation_id)
            set_widget_context(conversation_id=conversation_id)
            log_conversation_event("started", self.tenant_id, conversation_id, visitor_id=self.visitor_id)
        elif conversation_id != self.conversation_id:
            logger.warning(
                f"Server returned conversation {conversation_id} for active conversation "
                f"{self.conversation_id}; keeping the first one"
            )

    def _rejected(self, reason: str) -> SendOutcome:
        logger.debug(f"Rejected request in state {self.state.value}: {reason}")
        return SendOutcome(status=SendStatus.REJECTED, reason=reason)

    @property
    def is_busy(self) -> bool:
        """Drives the typing indicator"""
        return self.state == S.SENDING

    @property
    def is_ended(self) -> bool:
        return self.state == S.ENDED

    @property
    def active_form(self) -> Optional[FormSchema]:
        return self.form_session.schema if self.form_session else None

    @property
    def has_visitor_messages(self) -> bool:
        return any(m.role == MessageRole.VISITOR for m in self.transcript)

    def can_submit(self) -> bool:
        return self.state in (S.IDLE, S.FORM_PENDING)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> SendOutcome:
        """Send a visitor message; failures end up in the transcript, never raised"""
        text = (text or "").strip()
        if not text:
            return self._rejected("empty message")

        try:
            self._transition("submit")
        except InvalidTransitionError as e:
            return self._rejected(str(e))

        async with self._lock:
            epoch = self._epoch
            self._append(MessageRole.VISITOR, text)

            if self.preview_mode:
                reply = self._append(MessageRole.AGENT, PREVIEW_MESSAGE)
                self._transition("reply")
                return SendOutcome(status=SendStatus.PREVIEW, reply=reply)

            failure_text = None
            response = None
            try:
                response = await asyncio.wait_for(
                    self.client.send_message(self.tenant_id, self.visitor_id, text, self.conversation_id),
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Message send timed out after {self.request_timeout}s")
                failure_text = SEND_ERROR_MESSAGE
            except RateLimitedError:
                failure_text = RATE_LIMIT_MESSAGE
            except MessageSendError as e:
                logger.error(f"Message send failed: {e}")
                failure_text = SEND_ERROR_MESSAGE
            except WidgetError as e:
                logger.error(f"Unexpected widget error sending message: {e}")
                failure_text = SEND_ERROR_MESSAGE

            if epoch != self._epoch:
                logger.info("Dropping reply that arrived after the conversation ended")
                return SendOutcome(status=SendStatus.DISCARDED, reason="conversation ended")

            if failure_text is not None:
                reply = self._append(MessageRole.AGENT, failure_text)
                self.form_session = None
                self._transition("failure")
                return SendOutcome(status=SendStatus.FAILED, reply=reply, reason=failure_text)

            self._adopt_conversation_id(response.conversation_id)
            reply = self._append(MessageRole.AGENT, response.message, response.form_data)
            if response.form_data is not None:
                # Only the latest form is live
                self.form_session = FormSession(response.form_data)
                self._transition("reply_with_form")
            else:
                self.form_session = None
                self._transition("reply")
            return SendOutcome(status=SendStatus.DELIVERED, reply=reply)

    async def submit_form(self) -> SendOutcome:
        """Validate the live form locally and submit it once if valid"""
        if self.form_session is None:
            return self._rejected("no live form")
        if self.state == S.SENDING:
            return self._rejected(str(ConversationBusyError()))

        session = self.form_session
        try:
            submission = session.build_submission()
        except FormValidationError as e:
            return SendOutcome(status=SendStatus.REJECTED, reason=str(e))

        try:
            self._transition("submit_form")
        except InvalidTransitionError as e:
            return self._rejected(str(e))

        async with self._lock:
            epoch = self._epoch
            result = None
            try:
                result = await asyncio.wait_for(
                    self.client.submit_form(
                        self.tenant_id,
                        self.visitor_id,
                        submission.form_id,
                        submission.to_submitted_data(),
                        self.conversation_id,
                    ),
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Form {submission.form_id} submission timed out")
            except FormSubmitError as e:
                logger.error(f"Form submission failed: {e}")
            except WidgetError as e:
                logger.error(f"Unexpected widget error submitting form: {e}")

            if epoch != self._epoch:
                logger.info("Dropping form response that arrived after the conversation ended")
                return SendOutcome(status=SendStatus.DISCARDED, reason="conversation ended")

            # The form is not re-shown either way; the visitor continues in free text
            self.form_session = None

            if result is None:
                reply = self._append(MessageRole.AGENT, FORM_ERROR_MESSAGE)
                self._notify("error", "Failed to submit form. Please try again.")
                self._transition("failure")
                return SendOutcome(status=SendStatus.FAILED, reply=reply, reason=FORM_ERROR_MESSAGE)

            confirmation = result.message or session.schema.success_message or FORM_SUCCESS_FALLBACK
            reply = self._append(MessageRole.AGENT, confirmation)
            self._notify("success", "Form submitted successfully!")
            self._transition("reply")
            return SendOutcome(status=SendStatus.DELIVERED, reply=reply)

    def end(self) -> Optional[str]:
        """
        Close the conversation locally. Clears the persisted handle and returns
        the handle that was active so the caller can signal the server.
        """
        handle = self.conversation_id
        self._transition("end")
        self._epoch += 1
        self.form_session = None
        if handle is not None:
            self.conversation_id = None
            self.store.clear_conversation_handle(self.tenant_id)
        return handle

    def reset(self, welcome_message: str) -> None:
        """Start a fresh conversation after an ended one"""
        self._transition("reset")
        self.transcript = []
        self.notifications = []
        self.form_session = None
        self._append(MessageRole.AGENT, welcome_message)

    def dismiss_notifications(self) -> List[Notification]:
        notifications, self.notifications = self.notifications, []
        return notifications
