import asyncio
import logging
import sys

from .ble_backend import BleakBackend
from .config import parse_args
from .connector import RowerSession
from .console import ConsoleUI, setup_logging
from .distribution import Distributor
from .errors import DiscoveryError
from .mock import MockBackend
from .registry import ClientRegistry
from .udp_server import UdpSink
from .ws_server import WebSocketServer

logger = logging.getLogger("pm5_bridge")


# =============================================================================
# OPERATOR INPUT
# =============================================================================
class StdinReader:
    """Line reader on the event loop; returns None once stdin hits EOF."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self.lines = asyncio.Queue()
        self.loop = asyncio.get_running_loop()
        self.attached = False
        try:
            self.loop.add_reader(self.stream, self._on_ready)
            self.attached = True
        except (NotImplementedError, ValueError, OSError) as e:
            logger.warning(f"Could not add stdin reader ({e}). Input might not work.")
            self.lines.put_nowait(None)

    def _on_ready(self):
        line = self.stream.readline()
        if not line:
            self.close()
            self.lines.put_nowait(None)
            return
        self.lines.put_nowait(line)

    async def __call__(self):
        return await self.lines.get()

    def close(self):
        if self.attached:
            self.loop.remove_reader(self.stream)
            self.attached = False


async def select(items, what, read_line, index=None):
    if index is not None:
        if 0 <= index < len(items):
            return items[index]
        logger.warning(f"{what} index {index} out of range")
    elif len(items) == 1:
        return items[0]

    logger.info(f"Select the index of the {what} to use:")
    for pos, item in enumerate(items):
        logger.info(f" {pos} - {getattr(item, 'label', None) or item.name}")

    while True:
        line = await read_line()
        if line is None:
            logger.warning(f"No input available, using {what} 0")
            return items[0]
        try:
            choice = int(line.strip())
        except ValueError:
            logger.info(f"Expected a number. Couldn't parse '{line.strip()}'! Try different input.")
            continue
        if 0 <= choice < len(items):
            return items[choice]
        logger.info("Index out of bounds! Input a valid index!")


async def operator_loop(read_line):
    logger.info("Ready. Type 'q' to exit.")
    while True:
        line = await read_line()
        if line is None:
            # Headless: keep bridging until interrupted
            await asyncio.Event().wait()
        command = line.strip()
        if command == "q":
            return
        if command:
            logger.info(f"Unknown command: {command}")


# =============================================================================
# BRIDGE
# =============================================================================
async def discover(session, config, read_line):
    try:
        adapters = await session.list_adapters()
        if config.list_only:
            for pos, adapter in enumerate(adapters):
                logger.info(f"Adapter {pos}: {adapter.label}")
            index = config.adapter_index or 0
            adapter = adapters[index] if index < len(adapters) else adapters[0]
        else:
            adapter = await select(adapters, "bluetooth adapter", read_line, config.adapter_index)

        monitors = await session.scan_for_monitors(adapter)
        if config.list_only:
            for pos, monitor in enumerate(monitors):
                logger.info(f"Monitor {pos}: {monitor.name} | Address: {monitor.address}")
            return None
        return await select(monitors, "peripheral", read_line, config.device_index)
    except DiscoveryError as e:
        logger.error(f"Discovery Error: {e}")
        return None


async def run_bridge(config, ui, backend=None, read_line=None):
    registry = ClientRegistry()
    ui.clients = lambda: len(registry)

    udp_sink = None
    ws_server = None
    if not config.list_only:
        if config.udp_target:
            udp_sink = await UdpSink.open(config.port, config.udp_target)
        if config.websocket:
            ws_server = WebSocketServer(registry, config.ws_host, config.ws_port, config.ws_path)
            await ws_server.start()

    distributor = Distributor(registry, udp_sink, observer=ui.update_status)
    if backend is None:
        backend = MockBackend() if config.mock else BleakBackend()
    session = RowerSession(backend, distributor.publish,
                           name_marker=config.marker,
                           scan_window=config.scan_window,
                           retry_budget=config.retries)

    stdin_reader = None
    if read_line is None:
        stdin_reader = read_line = StdinReader()

    session_task = None
    try:
        peripheral = await discover(session, config, read_line)
        if config.list_only:
            return session
        if peripheral is not None:
            session_task = asyncio.create_task(session.connect_and_stream(peripheral))
        await operator_loop(read_line)
        return session
    finally:
        if session_task is not None:
            await session.close()
            session_task.cancel()
            await asyncio.gather(session_task, return_exceptions=True)
        if stdin_reader is not None:
            stdin_reader.close()
        if ws_server is not None:
            await ws_server.close()
        if udp_sink is not None:
            udp_sink.close()


def run(argv=None):
    config = parse_args(argv)
    ui = ConsoleUI()
    setup_logging(ui, config.debug)
    if config.debug:
        logger.info("DEBUG MODE ENABLED")
    if config.mock:
        logger.warning("!!! RUNNING IN MOCK MODE - NO PHYSICAL CONNECTION !!!")

    try:
        asyncio.run(run_bridge(config, ui))
    except KeyboardInterrupt:
        logger.info("Stopped by User")
    except Exception as e:
        logger.error(f"Fatal Error: {e!r}")
        return 1
    finally:
        print()  # Newline after the status line
    return 0
