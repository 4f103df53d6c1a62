import logging
import sys
import time

LOG_FORMAT = '%(asctime)s - %(message)s'
LOG_DATEFMT = '%H:%M:%S'


# =============================================================================
# CONSOLE UI & LOGGING
# =============================================================================
class ConsoleUI:
    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self.status_line = ""
        self.is_tty = self.stream.isatty()
        self.last_print_time = 0
        self.clients = lambda: 0

    def update_status(self, snapshot, state="Streaming"):
        # Format: [Streaming] Cal: 12 | SPM: 24 | Stroke Cal: 950 | Clients: 2
        self.status_line = (
            f"[{state}] "
            f"Cal: {snapshot.cals} | "
            f"SPM: {snapshot.stroke_rate} | "
            f"Stroke Cal: {snapshot.stroke_cals} | "
            f"Clients: {self.clients()}"
        )
        self.refresh()

    def refresh(self):
        if self.is_tty:
            # Interactive: redraw the line in place
            self.stream.write(f"\r\x1b[K{self.status_line}")
            self.stream.flush()
        elif time.time() - self.last_print_time > 1.0:
            # Headless: plain lines, at most one per second
            print(self.status_line, file=self.stream, flush=True)
            self.last_print_time = time.time()

    def log(self, message):
        if self.is_tty:
            self.stream.write("\r\x1b[K")
            self.stream.write(f"{message}\n")
            self.stream.write(self.status_line)
            self.stream.flush()
        else:
            print(message, file=self.stream, flush=True)


class ScrollingLogHandler(logging.Handler):
    """Prints log records above the console status line."""

    def __init__(self, ui):
        super().__init__()
        self.ui = ui

    def emit(self, record):
        try:
            self.ui.log(self.format(record))
        except Exception:
            self.handleError(record)


def setup_logging(ui, debug=False, name="pm5_bridge"):
    logger = logging.getLogger(name)
    # Default to INFO (hide debug noise)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    for old in list(logger.handlers):
        if isinstance(old, ScrollingLogHandler):
            logger.removeHandler(old)
    handler = ScrollingLogHandler(ui)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
    return logger
