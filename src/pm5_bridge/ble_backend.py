import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from bleak import BleakClient, BleakScanner

logger = logging.getLogger(__name__)

SYSFS_BLUETOOTH = Path("/sys/class/bluetooth")


@dataclass
class Adapter:
    name: Optional[str]  # BlueZ interface ("hci0"), None = OS default
    label: str


@dataclass
class Peripheral:
    name: str
    address: str
    device: Any = None


# =============================================================================
# BLEAK LINK
# =============================================================================
class BleakLink:
    """A connected peripheral whose notifications are read as a stream.

    Notification callbacks feed a queue; a disconnect pushes a sentinel so
    ``notifications()`` ends. The stream cannot be restarted.
    """

    _CLOSED = None

    def __init__(self, peripheral: Peripheral, timeout=20.0):
        self.peripheral = peripheral
        self._queue: asyncio.Queue = asyncio.Queue()
        target = peripheral.device if peripheral.device is not None else peripheral.address
        self.client = BleakClient(target, timeout=timeout,
                                  disconnected_callback=self._on_disconnect)

    async def connect(self):
        await self.client.connect()

    async def subscribe(self, uuid):
        # bleak writes the CCCD (0x2902) for us when enabling notifications
        await self.client.start_notify(uuid, self._on_notify)

    async def notifications(self):
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item

    async def disconnect(self):
        try:
            await self.client.disconnect()
        finally:
            self._queue.put_nowait(self._CLOSED)

    def _on_notify(self, sender, data: bytearray):
        self._queue.put_nowait((str(sender.uuid).lower(), bytes(data)))

    def _on_disconnect(self, client):
        logger.info(f"Peripheral {self.peripheral.address} disconnected")
        self._queue.put_nowait(self._CLOSED)


# =============================================================================
# BLEAK BACKEND
# =============================================================================
class BleakBackend:
    """BLE stack boundary implemented on bleak."""

    def __init__(self, connect_timeout=20.0, platform=None):
        self.connect_timeout = connect_timeout
        self.platform = platform or sys.platform

    async def list_adapters(self):
        if self.platform.startswith("linux"):
            if not SYSFS_BLUETOOTH.is_dir():
                return []
            names = sorted(p.name for p in SYSFS_BLUETOOTH.iterdir()
                           if p.name.startswith("hci") and ":" not in p.name)
            return [Adapter(name=n, label=self._linux_label(n)) for n in names]
        # CoreBluetooth / WinRT only expose the system radio
        return [Adapter(name=None, label="default")]

    @staticmethod
    def _linux_label(name):
        address = SYSFS_BLUETOOTH / name / "address"
        try:
            return f"{name} ({address.read_text().strip()})"
        except OSError:
            return name

    async def scan(self, adapter: Adapter, window: float):
        kwargs = {}
        if adapter.name:
            kwargs["adapter"] = adapter.name
        found = await BleakScanner.discover(timeout=window, return_adv=True, **kwargs)

        peripherals = []
        for device, adv in found.values():
            name = adv.local_name or device.name
            if not name:
                continue
            logger.debug(f"Device: {name} | Address: {device.address} | RSSI: {adv.rssi}")
            peripherals.append(Peripheral(name=name, address=device.address, device=device))
        return peripherals

    async def connect(self, peripheral: Peripheral):
        link = BleakLink(peripheral, timeout=self.connect_timeout)
        await link.connect()
        return link
