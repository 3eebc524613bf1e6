"""
Pytest configuration and shared fixtures for widget runtime tests
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest
from tenacity import wait_none

# Allow running the tests from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from widget_runtime.services.identity_store import InMemoryIdentityStore
from widget_runtime.services.widget_client import WidgetApiClient

BASE_URL = "http://widget.test/api"
TENANT_ID = "bot-123"


class FakeWidgetApi:
    """
    Records every request and answers from per-path handlers.

    Handlers receive the httpx.Request and return an httpx.Response.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handlers: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def on(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers[f"{method} {path}"] = handler

    def reply(self, method: str, path: str, status_code: int = 200, payload: Any = None) -> None:
        self.on(method, path, lambda request: httpx.Response(status_code, json=payload if payload is not None else {}))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(f"{request.method} {request.url.path}")
        if handler is None:
            return httpx.Response(404, json={"detail": "not found"})
        return handler(request)

    def bodies(self, path: str) -> List[Dict[str, Any]]:
        return [
            json.loads(request.content or b"{}")
            for request in self.requests
            if request.url.path == path
        ]


@pytest.fixture
def fake_api():
    return FakeWidgetApi()


@pytest.fixture
def client(fake_api):
    return WidgetApiClient(
        base_url=BASE_URL,
        timeout=2.0,
        transport=httpx.MockTransport(fake_api),
        retry_wait=wait_none(),
    )


@pytest.fixture
def store():
    return InMemoryIdentityStore()


@pytest.fixture
def widget_config():
    """Config payload as served by GET /widget/{tenant}/config"""
    return {
        "chatbot_id": TENANT_ID,
        "name": "Acme Support",
        "theme_color": "#112233",
        "welcome_message": "Welcome to Acme!",
        "faqs": [
            {"question": "What are your hours?", "answer": "9-5"},
            {"question": "Where are you?"},
            {"question": "Do you ship abroad?"},
            {"question": "How do I return an item?"},
            {"question": "Do you have a loyalty card?"},
        ],
        "is_active": True,
    }


@pytest.fixture
def contact_form():
    """Form with one required text field (3-10 chars) and one required email field"""
    return {
        "id": "form-1",
        "form_title": "Contact us",
        "fields": [
            {"id": "name", "type": "text", "label": "Name", "required": True,
             "validation": {"min": 3, "max": 10}},
            {"id": "email", "type": "email", "label": "Email", "required": True},
        ],
        "success_message": "We'll be in touch",
        "require_terms_acceptance": False,
    }
