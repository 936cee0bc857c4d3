"""
Logging for the matcher: a console handler at the configured level plus a FlightLogger that
keeps recent DEBUG records in memory. A failed identification dumps that buffer to a file
named after the image hash.
"""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from product_match.core.config import get_config

FLIGHT_LOG_CAPACITY = 20_000
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# per-request INFO chatter from these libraries stays out of the console
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "PIL")

_flight_logger: "FlightLogger | None" = None


class FlightLogger(logging.Handler):
    """In-memory ring buffer of log records, written out on demand for forensics."""

    def __init__(self, capacity: int = FLIGHT_LOG_CAPACITY, forensics_dir: str | Path = "logs/forensics") -> None:
        super().__init__(level=logging.DEBUG)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self._forensics_dir = Path(forensics_dir)

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    def dump(self, label: str, image_hash: str | None = None) -> str:
        """Write the buffer to {forensics_dir}/{label}[_{hash16}]_{utc timestamp}.log and return the path."""
        self._forensics_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        parts = [label, image_hash[:16]] if image_hash else [label]
        path = self._forensics_dir / f"{'_'.join(parts)}_{stamp}.log"
        formatter = self.formatter or logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        path.write_text("".join(formatter.format(r) + "\n" for r in self._records))
        return str(path)

    def __len__(self) -> int:
        return len(self._records)


def get_flight_logger() -> FlightLogger | None:
    return _flight_logger


def setup_logging() -> None:
    """
    Replace the root handlers with a console handler (configured log_level) and a FlightLogger.

    The root logger runs at DEBUG so the flight buffer sees everything; noisy client and
    driver loggers are held at WARNING.
    """
    global _flight_logger
    cfg = get_config()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(cfg.log_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    flight = FlightLogger(forensics_dir=cfg.forensics_dir)
    flight.setFormatter(formatter)
    root.addHandler(flight)
    _flight_logger = flight

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
