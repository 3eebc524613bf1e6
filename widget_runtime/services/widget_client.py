"""
HTTP client for the public widget API.

Wraps the four operations the embedded widget depends on. Every call is a
plain JSON request/response with a bounded timeout; failures are raised as
typed widget errors and converted into transcript entries by the caller.
"""
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import settings
from ..core.exceptions import (
    ChatbotNotFoundError,
    EndConversationError,
    FormSubmitError,
    MessageSendError,
    RateLimitedError,
    ServiceUnavailableError,
)
from ..core.logging_config import get_logger, log_widget_request
from ..schemas.widget import (
    FormSubmitRequest,
    FormSubmitResponse,
    WidgetConfig,
    WidgetMessageRequest,
    WidgetMessageResponse,
)
from .notifier import BestEffortNotifier, BlockingNotifier

logger = get_logger("widget_client")


class WidgetApiClient:
    """Client for the tenant-scoped widget endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        config_retries: Optional[int] = None,
        retry_wait=None,
    ):
        self.base_url = (base_url or settings.WIDGET_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.transport = transport
        self.config_retries = config_retries or settings.CONFIG_FETCH_RETRIES
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    def _widget_url(self, tenant_id: str, operation: str) -> str:
        return f"{self.base_url}/widget/{tenant_id}/{operation}"

    def end_conversation_url(self, conversation_id: str) -> str:
        return f"{self.base_url}/chat/conversations/{conversation_id}/end"

    async def _request(self, method: str, url: str, json_body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        started = time.monotonic()
        status_code = None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=json_body)
                status_code = response.status_code
                return response
        finally:
            log_widget_request(method, url, status_code, (time.monotonic() - started) * 1000)

    async def _fetch_config_once(self, tenant_id: str) -> WidgetConfig:
        url = self._widget_url(tenant_id, "config")
        try:
            response = await self._request("GET", url)
        except httpx.HTTPError as e:
            logger.error(f"Error fetching widget config for {tenant_id}: {e}")
            raise ServiceUnavailableError(f"Widget API unreachable: {e}") from e

        if response.status_code == 404:
            logger.warning(f"Chatbot {tenant_id} not found")
            raise ChatbotNotFoundError(tenant_id)
        if not response.is_success:
            logger.error(f"Widget API returned {response.status_code} for config of {tenant_id}")
            raise ServiceUnavailableError(
                f"Widget API returned {response.status_code}", status_code=response.status_code
            )

        try:
            return WidgetConfig.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid widget config payload for {tenant_id}: {e}")
            raise ServiceUnavailableError(f"Invalid widget config payload: {e}") from e

    async def fetch_config(self, tenant_id: str) -> WidgetConfig:
        """
        Load the widget configuration for a tenant.

        Raises:
            ChatbotNotFoundError: the tenant is unknown (404, not retried)
            ServiceUnavailableError: transport failure or other error status,
                after the configured number of attempts
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config_retries),
            wait=self.retry_wait,
            retry=retry_if_exception_type(ServiceUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._fetch_config_once(tenant_id)

    async def send_message(
        self,
        tenant_id: str,
        visitor_id: str,
        text: str,
        conversation_id: Optional[str] = None,
    ) -> WidgetMessageResponse:
        """
        Post a visitor message. Without a conversation_id the server opens a new
        conversation and returns its id.

        Raises:
            RateLimitedError: the server answered 429
            MessageSendError: any other failure
        """
        url = self._widget_url(tenant_id, "message")
        payload = WidgetMessageRequest(
            visitor_id=visitor_id,
            message=text,
            conversation_id=conversation_id,
        ).model_dump(exclude_none=True)

        try:
            response = await self._request("POST", url, payload)
        except httpx.TimeoutException as e:
            raise MessageSendError(f"Timed out waiting for reply: {e}") from e
        except httpx.HTTPError as e:
            raise MessageSendError(f"Widget API unreachable: {e}") from e

        if response.status_code == 429:
            logger.warning(f"Rate limited sending message for tenant {tenant_id}")
            raise RateLimitedError()
        if not response.is_success:
            raise MessageSendError(
                f"Widget API returned {response.status_code}", status_code=response.status_code
            )

        try:
            return WidgetMessageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise MessageSendError(f"Invalid message response: {e}") from e

    async def submit_form(
        self,
        tenant_id: str,
        visitor_id: str,
        form_id: str,
        values: Dict[str, Any],
        conversation_id: Optional[str] = None,
    ) -> FormSubmitResponse:
        """
        Submit locally validated form values.

        Raises:
            FormSubmitError: transport failure, error status, or success=false
        """
        url = self._widget_url(tenant_id, "form")
        payload = FormSubmitRequest(
            form_id=form_id,
            submitted_data=values,
            conversation_id=conversation_id,
            visitor_id=visitor_id,
        ).model_dump()

        try:
            response = await self._request("POST", url, payload)
        except httpx.HTTPError as e:
            raise FormSubmitError(form_id, f"Widget API unreachable: {e}") from e

        if not response.is_success:
            raise FormSubmitError(
                form_id, f"Widget API returned {response.status_code}", status_code=response.status_code
            )

        try:
            result = FormSubmitResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise FormSubmitError(form_id, f"Invalid form response: {e}") from e

        if not result.success:
            raise FormSubmitError(form_id, result.message or "Server rejected the submission")
        return result

    async def end_conversation(
        self,
        conversation_id: str,
        notifier: Optional[BestEffortNotifier] = None,
    ) -> bool:
        """
        Fire-and-forget end signal. The response body is never read.

        Raises:
            EndConversationError: the notifier could not deliver or queue the
                signal; callers swallow it
        """
        notifier = notifier or BlockingNotifier(transport=self.transport)
        url = self.end_conversation_url(conversation_id)
        if not await notifier.notify(url, {}):
            raise EndConversationError(conversation_id, "notification not delivered")
        return True
