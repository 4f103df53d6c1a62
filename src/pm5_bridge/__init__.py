"""Concept2 PM5 to UDP/WebSocket telemetry bridge."""

__version__ = "0.1.0"
