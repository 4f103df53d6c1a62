import asyncio

from .ble_backend import Adapter, Peripheral
from .row_data import ROWING_STATUS_2_UUID, ROWING_STATUS_3_UUID, STROKE_DATA_2_UUID

MOCK_NAME = "PM5 430000000 Row (mock)"
MOCK_ADDRESS = "00:00:00:00:00:00"


# =============================================================================
# PAYLOAD BUILDERS
# =============================================================================
def rowing_status_2(stroke_rate):
    # stroke rate at byte 5
    return bytes([0, 0, 0, 0, 0, stroke_rate & 0xFF]) + bytes(14)


def rowing_status_3(calories):
    # total calories at bytes 6-7
    return bytes(6) + bytes([calories & 0xFF, (calories >> 8) & 0xFF]) + bytes(12)


def stroke_data_2(stroke_calories):
    # stroke calories at bytes 6-7
    return bytes(6) + bytes([stroke_calories & 0xFF, (stroke_calories >> 8) & 0xFF]) + bytes(7)


class MockLink:
    """Simulated PM5: cycles through the three subscribed characteristics."""

    def __init__(self, interval=1.0, limit=None):
        self.interval = interval
        self.limit = limit
        self.subscribed = []
        self.connected = True

    async def subscribe(self, uuid):
        self.subscribed.append(uuid)

    async def notifications(self):
        calories = 0
        tick = 0
        while self.connected and (self.limit is None or tick < self.limit):
            phase = tick % 3
            if phase == 0:
                yield ROWING_STATUS_2_UUID, rowing_status_2(22 + tick % 6)
            elif phase == 1:
                calories += 1
                yield ROWING_STATUS_3_UUID, rowing_status_3(calories)
            else:
                yield STROKE_DATA_2_UUID, stroke_data_2(900 + (tick % 9) * 10)
            tick += 1
            await asyncio.sleep(self.interval)

    async def disconnect(self):
        self.connected = False


class MockBackend:
    def __init__(self, interval=1.0, limit=None):
        self.interval = interval
        self.limit = limit

    async def list_adapters(self):
        return [Adapter(name=None, label="mock")]

    async def scan(self, adapter, window):
        return [Peripheral(name=MOCK_NAME, address=MOCK_ADDRESS)]

    async def connect(self, peripheral):
        return MockLink(interval=self.interval, limit=self.limit)
