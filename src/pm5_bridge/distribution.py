import logging

from .errors import DeliverySendError

logger = logging.getLogger(__name__)


class Distributor:
    """Pushes each snapshot to the UDP sink and every registered subscriber.

    Sinks fail independently: a UDP error is logged and the WebSocket
    broadcast still happens.
    """

    def __init__(self, registry, udp_sink=None, observer=None):
        self.registry = registry
        self.udp_sink = udp_sink
        self.observer = observer
        self.published = 0

    async def publish(self, snapshot):
        payload = snapshot.to_json()
        self.published += 1

        if self.udp_sink is not None:
            try:
                self.udp_sink.send(payload)
            except DeliverySendError as e:
                logger.error(f"Sending-Error: {e}")

        delivered = await self.registry.broadcast(payload)
        logger.debug(f"Snapshot {payload} -> {delivered} websocket client(s)")

        if self.observer is not None:
            self.observer(snapshot)
