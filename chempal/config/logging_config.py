# chempal/config/logging_config.py

"""Per-run timestamped logging for chempal.

Every launch writes ``logs/run_YYYYMMDD_HHMMSS.log``.  All ``chempal.*``
loggers (one per supplier plus the orchestrator, cache, builder and
rate services) propagate into it, so a single file tells the whole
story of one aggregated search: which suppliers were queried, which
candidates were dropped and why, and every adapter failure with its
traceback.

Only the newest ``keep`` run logs are retained.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from chempal.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _prune_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete all but the newest *keep* run logs."""
    runs = sorted(logs_dir.glob("run_*.log"))
    for stale in runs[:-keep] if keep > 0 else []:
        try:
            stale.unlink()
        except OSError:
            # Held open by another process on some platforms
            continue


def setup_logging(
    console_level: int = logging.WARNING,
    keep: int = 20,
) -> Path:
    """Attach file and console handlers to the ``chempal`` logger.

    Args:
        console_level: Minimum level echoed to stderr.
        keep: Number of run logs to retain in ``Settings.LOGS_DIR``.

    Returns:
        Path to the log file for this run.  Repeated calls are no-ops
        and return a freshly computed (unused) path.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{stamp}.log"

    root = logging.getLogger("chempal")
    root.setLevel(logging.DEBUG)
    if root.handlers:
        return log_file

    _prune_old_logs(logs_dir, keep - 1)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root.addHandler(file_handler)
    root.addHandler(console)
    root.info("Logging to %s", log_file)
    return log_file
