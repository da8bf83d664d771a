"""
Shared fixtures for the realtime client tests.

The socket is replaced by ``FakeWebSocket`` so tests can feed server events
and inspect exactly what the client wrote.
"""

import asyncio
import json
from typing import Any, Dict, List
from unittest.mock import AsyncMock, patch

import pytest

from src.earthvoice.client import RealtimeClient


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str):
        self.sent.append(message)

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, event: Dict[str, Any]):
        """Queue a server event for the receive loop."""
        self._incoming.put_nowait(json.dumps(event))

    def drop(self):
        """Simulate the peer closing the connection."""
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def sent_events(self) -> List[Dict[str, Any]]:
        return [json.loads(m) for m in self.sent]

    def sent_types(self) -> List[str]:
        return [e["type"] for e in self.sent_events()]


async def connect_client(client: RealtimeClient, ws: FakeWebSocket) -> AsyncMock:
    """Connect ``client`` with ``ws`` standing in for the real socket."""
    connect_mock = AsyncMock(return_value=ws)
    with patch("src.earthvoice.api.websockets.connect", new=connect_mock):
        await client.connect()
    await client.realtime.flush()
    return connect_mock


def feed(client: RealtimeClient, event: Dict[str, Any]) -> None:
    """Deliver a server event synchronously, as the receive loop would."""
    client.realtime.handle_message(json.dumps(event))


async def drain(client: RealtimeClient) -> None:
    """Wait for in-flight tool calls and queued writes to finish."""
    while client._tool_tasks:
        await asyncio.gather(*list(client._tool_tasks))
    await client.realtime.flush()


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def client():
    return RealtimeClient(
        url="wss://realtime.example.test/v1/realtime",
        api_key="test-key",
        model="test-model",
    )
