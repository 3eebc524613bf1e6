"""
Best-effort delivery of fire-and-forget notifications.

Two transports share one contract: the caller hands over a URL and a JSON body
and never learns whether the server accepted it.

- BlockingNotifier awaits the POST (bounded by a timeout) and is used when the
  runtime is still alive, e.g. an explicit "End Chat" or a normal teardown.
- BeaconNotifier queues the POST on a non-daemon worker thread and returns
  immediately. The interpreter joins non-daemon threads before exiting, so a
  beacon queued while the program is still running is delivered during
  shutdown. atexit handlers run after that join, so callers in an exit hook
  must flush() before returning; once no new threads may be started the POST
  is made inline.
"""
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.logging_config import get_logger

logger = get_logger("notifier")


class BestEffortNotifier(ABC):
    """Send a notification without surfacing failures to the caller"""

    @abstractmethod
    async def notify(self, url: str, body: Dict[str, Any]) -> bool:
        """Returns True when the notification was delivered (blocking) or queued (beacon)"""
        ...


class BlockingNotifier(BestEffortNotifier):

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.END_CONVERSATION_TIMEOUT_SECONDS
        self.transport = transport

    async def notify(self, url: str, body: Dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=body)
                if response.is_success:
                    return True
                logger.warning(f"Notification to {url} returned {response.status_code}")
                return False
        except httpx.HTTPError as e:
            logger.warning(f"Notification to {url} failed: {e}")
            return False


class BeaconNotifier(BestEffortNotifier):

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout or settings.END_CONVERSATION_TIMEOUT_SECONDS
        self.transport = transport
        self._threads: List[threading.Thread] = []

    def _deliver(self, url: str, body: Dict[str, Any]) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=body)
                if not response.is_success:
                    logger.warning(f"Beacon to {url} returned {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Beacon to {url} failed: {e}")

    def send(self, url: str, body: Dict[str, Any]) -> bool:
        """Queue the POST and return at once; safe to call from unload handlers"""
        try:
            thread = threading.Thread(
                target=self._deliver,
                args=(url, body),
                name="widget-beacon",
                daemon=False,
            )
            thread.start()
        except RuntimeError as e:
            # No new threads once the interpreter is finalizing; deliver inline
            logger.debug(f"Beacon to {url} delivered inline: {e}")
            self._deliver(url, body)
            return True
        self._threads.append(thread)
        return True

    async def notify(self, url: str, body: Dict[str, Any]) -> bool:
        return self.send(url, body)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued beacons; used by tests and orderly shutdowns"""
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
