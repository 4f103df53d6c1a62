import argparse
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .connector import DEFAULT_NAME_MARKER, DEFAULT_RETRY_BUDGET, DEFAULT_SCAN_WINDOW

DEFAULT_PORT = int(os.environ.get("PM5_BRIDGE_PORT", "8080"))
DEFAULT_UDP_TARGET = os.environ.get("PM5_BRIDGE_UDP_TARGET", "255.255.255.255:8081")
DEFAULT_WS_HOST = os.environ.get("PM5_BRIDGE_WS_HOST", "127.0.0.1")
DEFAULT_WS_PORT = int(os.environ.get("PM5_BRIDGE_WS_PORT", "8000"))
DEFAULT_WS_PATH = "/ws"
NAME_MARKER = os.environ.get("PM5_NAME_MARKER", DEFAULT_NAME_MARKER)
SCAN_WINDOW = float(os.environ.get("PM5_SCAN_WINDOW", str(DEFAULT_SCAN_WINDOW)))


@dataclass
class BridgeConfig:
    port: int = DEFAULT_PORT
    udp_target: Optional[Tuple[str, int]] = None
    ws_host: str = DEFAULT_WS_HOST
    ws_port: int = DEFAULT_WS_PORT
    ws_path: str = DEFAULT_WS_PATH
    websocket: bool = True
    marker: str = NAME_MARKER
    scan_window: float = SCAN_WINDOW
    retries: int = DEFAULT_RETRY_BUDGET
    adapter_index: Optional[int] = None
    device_index: Optional[int] = None
    list_only: bool = False
    mock: bool = False
    debug: bool = False


def parse_address(text) -> Tuple[str, int]:
    """Parse ``host:port`` into a tuple usable by ``sendto``."""
    host, sep, port = str(text).rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected host:port, got '{text}'")
    try:
        port_num = int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port in '{text}'")
    if not 0 < port_num < 65536:
        raise argparse.ArgumentTypeError(f"port out of range in '{text}'")
    return host.strip("[]"), port_num


def _positive_int(text):
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def build_parser():
    parser = argparse.ArgumentParser(description='Concept2 PM5 to UDP/WebSocket Bridge')
    parser.add_argument('port', nargs='?', type=int, default=DEFAULT_PORT,
                        help=f'Local UDP port to bind (default: {DEFAULT_PORT})')
    parser.add_argument('udp_target', nargs='?', type=parse_address, default=DEFAULT_UDP_TARGET,
                        help=f'host:port receiving telemetry datagrams (default: {DEFAULT_UDP_TARGET})')
    parser.add_argument('--no-udp', action='store_true', help='Disable the UDP sink')
    parser.add_argument('--ws-host', default=DEFAULT_WS_HOST, help='WebSocket bind address')
    parser.add_argument('--ws-port', type=int, default=DEFAULT_WS_PORT, help='WebSocket port')
    parser.add_argument('--ws-path', default=DEFAULT_WS_PATH, help='WebSocket path')
    parser.add_argument('--no-ws', action='store_true', help='Disable the WebSocket server')
    parser.add_argument('--marker', default=NAME_MARKER,
                        help='Substring identifying a performance monitor (case-sensitive)')
    parser.add_argument('--scan-window', type=float, default=SCAN_WINDOW,
                        help='Seconds to scan before filtering devices')
    parser.add_argument('--retries', type=_positive_int, default=DEFAULT_RETRY_BUDGET,
                        help='Connection attempts before giving up')
    parser.add_argument('--adapter', type=int, help='Adapter index (skip the prompt)')
    parser.add_argument('--device', type=int, help='Monitor index (skip the prompt)')
    parser.add_argument('--list', action='store_true', help='List adapters and monitors, then exit')
    parser.add_argument('--mock', action='store_true', help='Run in simulation mode')
    parser.add_argument('--debug', action='store_true', help='Enable verbose logging')
    return parser


def parse_args(argv=None) -> BridgeConfig:
    args = build_parser().parse_args(argv)
    return BridgeConfig(
        port=args.port,
        udp_target=None if args.no_udp else args.udp_target,
        ws_host=args.ws_host,
        ws_port=args.ws_port,
        ws_path=args.ws_path,
        websocket=not args.no_ws,
        marker=args.marker,
        scan_window=args.scan_window,
        retries=args.retries,
        adapter_index=args.adapter,
        device_index=args.device,
        list_only=args.list,
        mock=args.mock,
        debug=args.debug,
    )
