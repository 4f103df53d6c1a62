"""Exception hierarchy for the bridge."""


class BridgeError(Exception):
    pass


# =============================================================================
# DISCOVERY
# =============================================================================
class DiscoveryError(BridgeError):
    pass


class NoAdapterFound(DiscoveryError):
    def __init__(self):
        super().__init__("Couldn't find a bluetooth adapter")


class NoPeripheralFound(DiscoveryError):
    def __init__(self, marker):
        self.marker = marker
        super().__init__(f"No performance monitor found (name containing '{marker}')")


# =============================================================================
# CONNECTION
# =============================================================================
class RowerConnectionError(BridgeError):
    """A single connect/subscribe attempt failed."""

    def __init__(self, attempt, cause):
        self.attempt = attempt
        self.cause = cause
        super().__init__(f"Attempt {attempt} failed: {cause!r}")


# =============================================================================
# DECODING
# =============================================================================
class DecodeError(BridgeError):
    pass


class MalformedPayload(DecodeError):
    def __init__(self, uuid, needed, got):
        self.uuid = uuid
        self.needed = needed
        self.got = got
        super().__init__(f"Payload from {uuid} too short: need {needed} bytes, got {got}")


class UnknownCharacteristic(DecodeError):
    def __init__(self, uuid):
        self.uuid = uuid
        super().__init__(f"Unknown characteristic {uuid}")


# =============================================================================
# DELIVERY
# =============================================================================
class DeliverySendError(BridgeError):
    def __init__(self, sink, cause=None):
        self.sink = sink
        self.cause = cause
        msg = f"Send to {sink} failed"
        if cause is not None:
            msg += f": {cause!r}"
        super().__init__(msg)
