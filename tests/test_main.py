import asyncio
import io
import logging
import runpy

import pytest

from pm5_bridge import main
from pm5_bridge.ble_backend import Adapter
from pm5_bridge.config import BridgeConfig
from pm5_bridge.connector import SessionState
from pm5_bridge.console import ConsoleUI, ScrollingLogHandler, setup_logging
from pm5_bridge.main import run_bridge, select
from pm5_bridge.mock import MockBackend
from pm5_bridge.row_data import RowData


class ScriptedInput:
    """Feeds operator lines; None means EOF."""

    def __init__(self, lines, hold=None):
        self.lines = list(lines)
        self.hold = hold

    async def __call__(self):
        if self.hold is not None:
            await self.hold.wait()
        if self.lines:
            return self.lines.pop(0)
        return None


class EmptyBackend(MockBackend):
    async def list_adapters(self):
        return []


def quiet_ui():
    return ConsoleUI(stream=io.StringIO())


def test_select_prompts_until_valid():
    adapters = [Adapter(name="hci0", label="hci0"), Adapter(name="hci1", label="hci1")]
    read_line = ScriptedInput(["abc\n", "7\n", "1\n"])
    chosen = asyncio.run(select(adapters, "bluetooth adapter", read_line))
    assert chosen.name == "hci1"
    assert read_line.lines == []


def test_select_single_item_skips_prompt():
    only = [Adapter(name=None, label="default")]
    read_line = ScriptedInput([])
    assert asyncio.run(select(only, "bluetooth adapter", read_line)) is only[0]


def test_select_preset_index():
    adapters = [Adapter(name="hci0", label="hci0"), Adapter(name="hci1", label="hci1")]
    assert asyncio.run(select(adapters, "adapter", ScriptedInput([]), index=0)).name == "hci0"


def test_select_eof_falls_back_to_first():
    adapters = [Adapter(name="hci0", label="hci0"), Adapter(name="hci1", label="hci1")]
    assert asyncio.run(select(adapters, "adapter", ScriptedInput([None]))).name == "hci0"


def test_bridge_streams_mock_session_until_quit():
    ui = quiet_ui()
    config = BridgeConfig(udp_target=None, websocket=False, scan_window=0)

    async def scenario():
        hold = asyncio.Event()
        read_line = ScriptedInput(["status\n", "q\n"], hold=hold)
        task = asyncio.create_task(
            run_bridge(config, ui, backend=MockBackend(interval=0, limit=3), read_line=read_line))
        for _ in range(200):
            if ui.status_line.startswith("[Streaming] Cal: 1 "):
                break
            await asyncio.sleep(0.01)
        hold.set()
        return await task

    session = asyncio.run(scenario())
    assert session.state is SessionState.TERMINATED
    assert session.store.current().cals == 1
    assert ui.status_line.startswith("[Streaming] Cal: 1")


def test_bridge_survives_missing_adapter():
    ui = quiet_ui()
    config = BridgeConfig(udp_target=None, websocket=False)
    session = asyncio.run(run_bridge(config, ui, backend=EmptyBackend(), read_line=ScriptedInput(["q\n"])))
    assert session.state is SessionState.IDLE


def test_list_only_returns_without_connecting():
    ui = quiet_ui()
    config = BridgeConfig(list_only=True)
    session = asyncio.run(run_bridge(config, ui, backend=MockBackend(), read_line=ScriptedInput([])))
    assert session.attempts == 0


def test_console_headless_status_and_logging():
    stream = io.StringIO()
    ui = ConsoleUI(stream=stream)
    ui.clients = lambda: 2
    ui.update_status(RowData(cals=10, stroke_rate=24, stroke_cals=950))
    assert ui.status_line == "[Streaming] Cal: 10 | SPM: 24 | Stroke Cal: 950 | Clients: 2"

    logger = setup_logging(ui, debug=True, name="pm5_bridge.test_console")
    logger.debug("hello")
    assert logger.level == logging.DEBUG
    assert sum(isinstance(h, ScrollingLogHandler) for h in logger.handlers) == 1
    assert "hello" in stream.getvalue()
    assert "Cal: 10" in stream.getvalue()


def test_module_entry_point_exits_with_run_status(monkeypatch):
    monkeypatch.setattr(main, "run", lambda: 3)
    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("pm5_bridge", run_name="__main__")
    assert excinfo.value.code == 3
