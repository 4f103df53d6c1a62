import asyncio
import logging

from .errors import DeliverySendError

logger = logging.getLogger(__name__)


class _UdpProtocol(asyncio.DatagramProtocol):
    def error_received(self, exc):
        # Async send errors (ICMP unreachable etc) surface here
        logger.warning(f"UDP error: {exc!r}")

    def connection_lost(self, exc):
        if exc:
            logger.warning(f"UDP socket closed: {exc!r}")


class UdpSink:
    """Fixed-destination datagram sender.

    One datagram per payload, no acknowledgement and no retransmission.
    """

    def __init__(self, transport, target):
        self.transport = transport
        self.target = target

    @classmethod
    async def open(cls, port, target, bind_host="0.0.0.0"):
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            _UdpProtocol,
            local_addr=(bind_host, port),
            allow_broadcast=True,
        )
        logger.info(f"UDP listening on {bind_host}:{port}, sending to {target[0]}:{target[1]}")
        return cls(transport, target)

    def send(self, payload: str):
        if self.transport is None or self.transport.is_closing():
            raise DeliverySendError(self.describe(), "socket closed")
        try:
            self.transport.sendto(payload.encode("utf-8"), self.target)
        except OSError as e:
            raise DeliverySendError(self.describe(), e) from e
        logger.debug(f"Sent to {self.describe()}: {payload}")

    def describe(self):
        return f"udp://{self.target[0]}:{self.target[1]}"

    def close(self):
        if self.transport is not None:
            self.transport.close()
