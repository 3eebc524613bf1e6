"""
Lifecycle controller for one widget instance.

Decides when a conversation starts or is resumed, resets everything for a new
conversation, and makes sure the server hears "end" at most once per
conversation handle, whichever of these fires first:

- end_chat(): explicit "End Chat"; blocking notifier, then local reset
- on_unload(): host process going away; beacon notifier, never blocks
- teardown(): runtime closed while the process lives on; blocking notifier

Whether the server treats a second end of the same conversation as a no-op is
not confirmed, so the guard lives on the client and does not rely on it.
"""
import atexit
from typing import List, Optional, Set

from ..core.config import settings
from ..core.exceptions import ConfigLoadError, EndConversationError
from ..core.logging_config import get_logger, log_conversation_event, set_widget_context
from ..schemas.conversation import LifecycleState, SendOutcome, SendStatus
from ..schemas.widget import FAQ, WidgetConfig
from .conversation import ConversationStateMachine
from .identity_store import IdentityStore, create_identity_store
from .notifier import BeaconNotifier, BestEffortNotifier, BlockingNotifier
from .widget_client import WidgetApiClient

logger = get_logger("lifecycle")


class LifecycleController:
    """Entry point a front end drives: start, send, forms, end, unload"""

    def __init__(
        self,
        tenant_id: str,
        client: Optional[WidgetApiClient] = None,
        store: Optional[IdentityStore] = None,
        blocking_notifier: Optional[BestEffortNotifier] = None,
        beacon_notifier: Optional[BeaconNotifier] = None,
        max_faq_suggestions: Optional[int] = None,
    ):
        self.tenant_id = tenant_id
        self.client = client or WidgetApiClient()
        self.store = store or create_identity_store()
        self.blocking_notifier = blocking_notifier or BlockingNotifier()
        self.beacon_notifier = beacon_notifier or BeaconNotifier()
        self.max_faq_suggestions = max_faq_suggestions or settings.MAX_FAQ_SUGGESTIONS

        self.lifecycle_state = LifecycleState.NOT_STARTED
        self.visitor_id: Optional[str] = None
        self.config: Optional[WidgetConfig] = None
        self.load_error: Optional[ConfigLoadError] = None
        self.machine: Optional[ConversationStateMachine] = None
        self.resumed = False

        self._ended_handles: Set[str] = set()
        self._unload_registered = False

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.machine is not None and self.load_error is None

    @property
    def welcome_message(self) -> str:
        if self.config is None:
            return settings.DEFAULT_WELCOME_MESSAGE
        message = (self.config.welcome_message or settings.DEFAULT_WELCOME_MESSAGE).strip()
        if not self.config.is_active:
            message += " (Preview Mode)"
        return message

    async def start(self) -> bool:
        """
        Load identity and configuration and seed the transcript.

        Returns False when the configuration could not be loaded; load_error
        then tells the front end which full-screen error to show.
        """
        self.visitor_id = self.store.get_or_create_visitor_id(self.tenant_id)
        set_widget_context(tenant_id=self.tenant_id, visitor_id=self.visitor_id)

        try:
            self.config = await self.client.fetch_config(self.tenant_id)
        except ConfigLoadError as e:
            logger.error(f"Widget failed to load for tenant {self.tenant_id}: {e}")
            self.load_error = e
            return False

        handle = self.store.get_conversation_handle(self.tenant_id)
        self.resumed = handle is not None
        self.machine = ConversationStateMachine(
            tenant_id=self.tenant_id,
            visitor_id=self.visitor_id,
            client=self.client,
            store=self.store,
            welcome_message=self.welcome_message,
            conversation_id=handle,
            preview_mode=not self.config.is_active,
        )

        if self.resumed:
            # Transcript is not persisted; only the handle carries over
            self.lifecycle_state = LifecycleState.ACTIVE
            set_widget_context(conversation_id=handle)
            log_conversation_event("resumed", self.tenant_id, handle)
        else:
            self.lifecycle_state = LifecycleState.NOT_STARTED
            log_conversation_event("ready", self.tenant_id)
        return True

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    @property
    def faq_suggestions(self) -> List[FAQ]:
        """FAQ shortcuts, shown only until the visitor's first message"""
        if not self.is_ready or self.machine.has_visitor_messages:
            return []
        return list(self.config.faqs[: self.max_faq_suggestions])

    @property
    def can_end_chat(self) -> bool:
        return self.is_ready and self.machine.has_visitor_messages and not self.machine.is_ended

    async def send(self, text: str) -> SendOutcome:
        if not self.is_ready:
            return SendOutcome(status=SendStatus.REJECTED, reason="widget not loaded")
        if self.lifecycle_state in (LifecycleState.ENDING, LifecycleState.ENDED):
            return SendOutcome(status=SendStatus.REJECTED, reason="conversation is closing")

        # not_started -> active as soon as the send is accepted
        if (
            self.lifecycle_state == LifecycleState.NOT_STARTED
            and self.machine.can_submit()
            and (text or "").strip()
        ):
            self.lifecycle_state = LifecycleState.ACTIVE
        return await self.machine.submit(text)

    async def ask_faq(self, question: str) -> SendOutcome:
        return await self.send(question)

    async def submit_form(self) -> SendOutcome:
        if not self.is_ready:
            return SendOutcome(status=SendStatus.REJECTED, reason="widget not loaded")
        return await self.machine.submit_form()

    # ------------------------------------------------------------------
    # Ending
    # ------------------------------------------------------------------

    def _claim(self, handle: Optional[str]) -> bool:
        """True exactly once per handle"""
        if handle is None or handle in self._ended_handles:
            return False
        self._ended_handles.add(handle)
        return True

    def _begin_ending(self) -> Optional[str]:
        if not self.is_ready or self.machine.is_ended:
            return None
        self.lifecycle_state = LifecycleState.ENDING
        return self.machine.end()

    async def _send_end(self, handle: str, reason: str) -> None:
        log_conversation_event("ended", self.tenant_id, handle, reason=reason)
        try:
            await self.client.end_conversation(handle, notifier=self.blocking_notifier)
        except EndConversationError as e:
            # Best effort only
            logger.warning(f"{e}")

    async def end_chat(self) -> None:
        """Explicit "End Chat": end on the server, then start over locally"""
        if not self.is_ready:
            return
        handle = self._begin_ending()
        if self._claim(handle):
            await self._send_end(handle, "user")
        self.lifecycle_state = LifecycleState.ENDED

        self.machine.reset(self.welcome_message)
        self.lifecycle_state = LifecycleState.NOT_STARTED
        set_widget_context(tenant_id=self.tenant_id, visitor_id=self.visitor_id)
        log_conversation_event("reset", self.tenant_id)

    def on_unload(self) -> None:
        """Host is going away: queue the end signal without waiting for it"""
        handle = self._begin_ending()
        if self._claim(handle):
            log_conversation_event("ended", self.tenant_id, handle, reason="unload")
            url = self.client.end_conversation_url(handle)
            if not self.beacon_notifier.send(url, {}):
                logger.warning(f"{EndConversationError(handle, 'beacon not queued')}")
        if self.lifecycle_state == LifecycleState.ENDING:
            self.lifecycle_state = LifecycleState.ENDED

    async def teardown(self) -> None:
        """Runtime closed without the host going away"""
        handle = self._begin_ending()
        if self._claim(handle):
            await self._send_end(handle, "teardown")
        if self.lifecycle_state == LifecycleState.ENDING:
            self.lifecycle_state = LifecycleState.ENDED
        self.unregister_unload_handler()

    def _on_exit(self) -> None:
        # Non-daemon threads were already joined before atexit hooks run
        self.on_unload()
        self.beacon_notifier.flush(timeout=settings.END_CONVERSATION_TIMEOUT_SECONDS)

    def register_unload_handler(self) -> None:
        """End the conversation on interpreter exit, like a page unload handler"""
        if not self._unload_registered:
            atexit.register(self._on_exit)
            self._unload_registered = True

    def unregister_unload_handler(self) -> None:
        if self._unload_registered:
            atexit.unregister(self._on_exit)
            self._unload_registered = False
