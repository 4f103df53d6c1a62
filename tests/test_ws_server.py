import asyncio
import http
from types import SimpleNamespace

from pm5_bridge.registry import ClientRegistry
from pm5_bridge.ws_server import WebSocketServer


class FakeConnection:
    """Stands in for websockets' ServerConnection."""

    def __init__(self, path="/ws", incoming=()):
        self.request = SimpleNamespace(path=path)
        self.remote_address = ("127.0.0.1", 50000)
        self.incoming = list(incoming)
        self.sent = []
        self.hangup = asyncio.Event()

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for message in self.incoming:
            yield message
        await self.hangup.wait()

    async def send(self, message):
        self.sent.append(message)

    def respond(self, status, text):
        return SimpleNamespace(status_code=status, body=text)


async def wait_until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met")
        await asyncio.sleep(0.01)


def test_unknown_path_rejected_before_upgrade():
    server = WebSocketServer(ClientRegistry())
    conn = FakeConnection()

    response = server.check_path(conn, SimpleNamespace(path="/other"))

    assert response.status_code == http.HTTPStatus.NOT_FOUND


def test_feed_path_is_upgraded():
    server = WebSocketServer(ClientRegistry(), path="/ws")
    conn = FakeConnection()
    assert server.check_path(conn, SimpleNamespace(path="/ws")) is None
    assert server.check_path(conn, SimpleNamespace(path="/ws?token=abc")) is None


def test_client_registered_then_removed_on_hangup():
    async def scenario():
        registry = ClientRegistry()
        server = WebSocketServer(registry)
        conn = FakeConnection(path="/ws?token=abc")
        task = asyncio.create_task(server.handle(conn))
        await wait_until(lambda: len(registry) == 1)

        await registry.broadcast('{"cals": 1, "stroke_rate": 2, "stroke_cals": 3}')
        await wait_until(lambda: conn.sent)

        conn.hangup.set()
        await task
        return conn.sent, len(registry)

    sent, count = asyncio.run(scenario())
    assert sent == ['{"cals": 1, "stroke_rate": 2, "stroke_cals": 3}']
    assert count == 0


def test_inbound_text_is_echoed_to_everyone():
    async def scenario():
        registry = ClientRegistry()
        server = WebSocketServer(registry)
        listener = FakeConnection()
        listen_task = asyncio.create_task(server.handle(listener))
        await wait_until(lambda: len(registry) == 1)

        talker = FakeConnection(incoming=[b"\x00binary", "hi all"])
        talk_task = asyncio.create_task(server.handle(talker))
        await wait_until(lambda: listener.sent and talker.sent)

        listener.hangup.set()
        talker.hangup.set()
        await asyncio.gather(listen_task, talk_task)
        return listener.sent, talker.sent

    listener_sent, talker_sent = asyncio.run(scenario())
    assert listener_sent == ["hi all"]
    assert talker_sent == ["hi all"]
