"""Shared fixtures: a scripted HTTP service and a recording sleep."""

from __future__ import annotations

import asyncio

import httpx
import pytest


class FakeService:
    """Answers requests from a script of (status_code, body) pairs, in order.

    ``body`` may be a dict/list (sent as JSON), a str (sent as text), or an
    exception instance (raised as a transport failure).
    """

    def __init__(self, responses, events=None):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.events = events if events is not None else []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.events.append(("request", request.method, request.url.path))
        if not self.responses:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        status, body = self.responses.pop(0)
        if isinstance(body, Exception):
            raise body
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self, events):
        self.delays: list[float] = []
        self.events = events
        self.on_sleep = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.events.append(("sleep", delay))
        if self.on_sleep is not None:
            self.on_sleep()
        # let other tasks run, as a real sleep would
        await asyncio.sleep(0)


@pytest.fixture
def events():
    return []


@pytest.fixture
def fake_sleep(events):
    return FakeSleep(events)


@pytest.fixture
def make_service(events):
    def _make(*responses):
        return FakeService(responses, events)

    return _make


@pytest.fixture
def make_client(fake_sleep):
    from backend.prediction_client import PredictionClient

    def _make(service, api_key="r8_secret", **options):
        options.setdefault("sleep", fake_sleep)
        options.setdefault("base_url", "http://testserver")
        return PredictionClient(api_key, transport=service.transport, **options)

    return _make
