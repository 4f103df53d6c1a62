import asyncio
import http
import logging
import uuid

import websockets
from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class WebSocketServer:
    """Live telemetry feed over WebSocket.

    Each connection gets a registry entry plus a relay task that drains its
    queue onto the socket. Inbound text frames are re-broadcast verbatim to
    every subscriber.
    """

    def __init__(self, registry, host="127.0.0.1", port=8000, path="/ws"):
        self.registry = registry
        self.host = host
        self.port = port
        self.path = path
        self._server = None

    async def start(self):
        self._server = await websockets.serve(self.handle, self.host, self.port,
                                            process_request=self.check_path)
        logger.info(f"WebSocket server on ws://{self.host}:{self.port}{self.path}")

    async def close(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    def check_path(self, conn: ServerConnection, request):
        # Runs before the handshake; only the feed path is upgraded
        if request.path.split("?", 1)[0] == self.path:
            return None
        logger.warning(f"Unknown websocket path {request.path} from {conn.remote_address}")
        return conn.respond(http.HTTPStatus.NOT_FOUND, "Unknown path\n")

    async def handle(self, conn: ServerConnection):
        client_id = uuid.uuid4().hex
        queue = self.registry.new_queue()
        await self.registry.register(client_id, queue)
        relay = asyncio.create_task(self._relay(client_id, conn, queue))
        logger.info(f"Client {client_id} connected from {conn.remote_address}")

        try:
            async for message in conn:
                if not isinstance(message, str):
                    logger.debug(f"Ignoring binary frame from {client_id}")
                    continue
                logger.debug(f"Received message from {client_id}: {message}")
                await self.registry.broadcast(message)
        except ConnectionClosed as e:
            logger.info(f"Error receiving message from {client_id}: {e}")
        finally:
            await self.registry.unregister(client_id)
            relay.cancel()
            try:
                await relay
            except asyncio.CancelledError:
                pass
            logger.info(f"Client {client_id} disconnected")

    async def _relay(self, client_id, conn, queue):
        while True:
            message = await queue.get()
            try:
                await conn.send(message)
            except ConnectionClosed as e:
                logger.info(f"Error sending websocket msg to {client_id}: {e}")
                return
