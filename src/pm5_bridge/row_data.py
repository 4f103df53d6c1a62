import json
from dataclasses import asdict, dataclass, replace

from .errors import MalformedPayload, UnknownCharacteristic

# =============================================================================
# PM5 GATT CONSTANTS
# =============================================================================
# Concept2 rowing service, 128-bit base ce06XXXX-43e5-11e4-916c-0800200c9a66
BASE_UUID = "ce06{:04x}-43e5-11e4-916c-0800200c9a66".format

ROWING_STATUS_2_UUID = BASE_UUID(0x0032)  # stroke rate
ROWING_STATUS_3_UUID = BASE_UUID(0x0033)  # calories
STROKE_DATA_2_UUID = BASE_UUID(0x0036)    # stroke calories

CAL_FIELD = "cals"
STROKE_RATE_FIELD = "stroke_rate"
STROKE_CAL_FIELD = "stroke_cals"


# =============================================================================
# DECODERS
# =============================================================================
def _require(uuid, data, length):
    if len(data) < length:
        raise MalformedPayload(uuid, length, len(data))


def u16le(data, offset):
    return data[offset] + data[offset + 1] * 256


def decode_stroke_rate(data) -> int:
    # Offset 5: strokes per minute
    _require(ROWING_STATUS_2_UUID, data, 6)
    return data[5]


def decode_calories(data) -> int:
    # Offsets 6-7: total calories
    _require(ROWING_STATUS_3_UUID, data, 8)
    return u16le(data, 6)


def decode_stroke_calories(data) -> int:
    # Offsets 6-7: stroke calories (cal/hr)
    _require(STROKE_DATA_2_UUID, data, 8)
    return u16le(data, 6)


DECODERS = {
    ROWING_STATUS_2_UUID: (STROKE_RATE_FIELD, decode_stroke_rate),
    ROWING_STATUS_3_UUID: (CAL_FIELD, decode_calories),
    STROKE_DATA_2_UUID: (STROKE_CAL_FIELD, decode_stroke_calories),
}

# Characteristics the session subscribes to, in subscription order
SUBSCRIBED_UUIDS = (ROWING_STATUS_2_UUID, ROWING_STATUS_3_UUID, STROKE_DATA_2_UUID)


def decode_notification(uuid, data):
    """Map a notification to the ``(field, value)`` it updates.

    Raises UnknownCharacteristic for a UUID we did not subscribe to and
    MalformedPayload when the payload is shorter than the layout requires.
    """
    entry = DECODERS.get(str(uuid).lower())
    if entry is None:
        raise UnknownCharacteristic(uuid)
    field, decoder = entry
    return field, decoder(bytes(data))


# =============================================================================
# SNAPSHOT
# =============================================================================
@dataclass
class RowData:
    cals: int = 0
    stroke_rate: int = 0
    stroke_cals: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class SnapshotStore:
    """Latest value of each tracked field, merged one notification at a time.

    Only the session's notification loop writes to it; readers get copies.
    """

    def __init__(self):
        self._data = RowData()

    def update_field(self, field, value):
        if field not in (CAL_FIELD, STROKE_RATE_FIELD, STROKE_CAL_FIELD):
            raise KeyError(field)
        setattr(self._data, field, int(value))

    def current(self) -> RowData:
        return replace(self._data)
