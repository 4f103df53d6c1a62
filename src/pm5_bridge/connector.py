import asyncio
import enum
import logging

from bleak.exc import BleakError

from .errors import (
    DecodeError,
    NoAdapterFound,
    NoPeripheralFound,
    RowerConnectionError,
)
from .row_data import SUBSCRIBED_UUIDS, SnapshotStore, decode_notification

logger = logging.getLogger(__name__)

DEFAULT_NAME_MARKER = "PM"
DEFAULT_SCAN_WINDOW = 5.0
DEFAULT_RETRY_BUDGET = 4

# Errors a single connect/subscribe attempt may raise
ATTEMPT_ERRORS = (BleakError, asyncio.TimeoutError, OSError)


class SessionState(enum.Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    CONNECTING = "Connecting"
    STREAMING = "Streaming"
    TERMINATED = "Terminated"


def filter_monitors(peripherals, marker=DEFAULT_NAME_MARKER):
    return [p for p in peripherals if p.name and marker in p.name]


class RowerSession:
    """One BLE session against one performance monitor.

    Drives discovery, the bounded connect retry, and the notification loop
    that feeds the snapshot store and hands every update to ``publish``.
    Sessions are single use: build a new one to reconnect.
    """

    def __init__(self, backend, publish, name_marker=DEFAULT_NAME_MARKER,
                 scan_window=DEFAULT_SCAN_WINDOW, retry_budget=DEFAULT_RETRY_BUDGET):
        self.backend = backend
        self.publish = publish
        self.name_marker = name_marker
        self.scan_window = scan_window
        self.retry_budget = retry_budget
        self.store = SnapshotStore()
        self.state = SessionState.IDLE
        self.attempts = 0
        self.errors = []
        self.link = None

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------
    async def list_adapters(self):
        adapters = await self.backend.list_adapters()
        if not adapters:
            raise NoAdapterFound()
        return adapters

    async def scan_for_monitors(self, adapter):
        self.state = SessionState.SCANNING
        logger.info(f"Scanning on {adapter.label} for {self.scan_window:.1f}s...")
        # Fixed observation window, the stack has no "scan complete" event
        peripherals = await self.backend.scan(adapter, self.scan_window)
        monitors = filter_monitors(peripherals, self.name_marker)
        if not monitors:
            self.state = SessionState.IDLE
            raise NoPeripheralFound(self.name_marker)
        for p in monitors:
            logger.info(f"Found monitor: {p.name} ({p.address})")
        return monitors

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------
    async def _attempt(self, peripheral):
        self.attempts += 1
        link = None
        try:
            link = await self.backend.connect(peripheral)
            for uuid in SUBSCRIBED_UUIDS:
                await link.subscribe(uuid)
            return link
        except ATTEMPT_ERRORS as e:
            if link is not None:
                await self._drop(link)
            raise RowerConnectionError(self.attempts, e) from e

    async def _drop(self, link):
        try:
            await link.disconnect()
        except ATTEMPT_ERRORS as e:
            logger.debug(f"Disconnect after failed attempt: {e!r}")

    async def connect(self, peripheral):
        """Try up to ``retry_budget`` times; return the link or None."""
        self.state = SessionState.CONNECTING
        for _ in range(self.retry_budget):
            logger.info(f"Connecting to {peripheral.name}. Try {self.attempts + 1}/{self.retry_budget}")
            try:
                return await self._attempt(peripheral)
            except RowerConnectionError as e:
                self.errors.append(e)
                logger.error(f"Connect Error: {e}")
        logger.error(f"Giving up on {peripheral.name} after {self.retry_budget} attempts")
        self.state = SessionState.TERMINATED
        return None

    async def connect_and_stream(self, peripheral):
        link = await self.connect(peripheral)
        if link is None:
            return self.state

        self.link = link
        self.state = SessionState.STREAMING
        logger.info(f"Subscribed to {peripheral.name}. Streaming...")
        try:
            async for uuid, data in link.notifications():
                await self.handle_notification(uuid, data)
        except ATTEMPT_ERRORS as e:
            logger.error(f"Notification stream failed: {e!r}")
        finally:
            self.state = SessionState.TERMINATED
            self.link = None
        logger.info("Notification stream closed")
        return self.state

    async def close(self):
        link = self.link
        if link is not None:
            await self._drop(link)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------
    async def handle_notification(self, uuid, data):
        try:
            field, value = decode_notification(uuid, data)
        except DecodeError as e:
            logger.warning(f"Dropping notification: {e}")
            return False
        self.store.update_field(field, value)
        await self.publish(self.store.current())
        return True
