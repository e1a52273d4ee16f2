# =============================================================================
# PROPOSAL RELAY - LOGGING CONFIGURATION
# =============================================================================
#
# Operational logs: console + optional timestamped file under logs/relay/.
# Audit logs: one JSON line per dispatch outcome under logs/audit/.
#
# The relay has no synchronous caller, so these logs are the only place a
# failed dispatch becomes visible.
#
# =============================================================================

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO/DEBUG
NOISY_LOGGERS = ("urllib3", "web3", "markdown_it")


def _get_project_root() -> Path:
    """Get the project root directory."""
    # This file is at shared/logging_config.py
    return Path(__file__).parent.parent


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = None,
    console_output: bool = True,
    file_output: bool = True,
) -> Optional[Path]:
    """
    Configure the root logger for a relay process.

    Args:
        level: Logging level (int or name, e.g. "DEBUG")
        log_dir: Base log directory (defaults to <project>/logs)
        console_output: Whether to log to stdout
        file_output: Whether to log to a timestamped file

    Returns:
        Path of the log file, or None if file output is disabled
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = None
    if file_output:
        relay_dir = Path(log_dir or _get_project_root() / "logs") / "relay"
        relay_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = relay_dir / f"relay_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(f"Logging initialized (level={logging.getLevelName(level)})")
    if log_file:
        root.info(f"Log file: {log_file}")

    return log_file


# =============================================================================
# AUDIT LOGGING
# =============================================================================

class AuditLogger:
    """
    Append-only JSONL record of what the relay dispatched.

    One line per dispatch outcome, with a SHA-256 hash of the details for
    traceability. Records are never rewritten.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        self.audit_dir = Path(log_dir or _get_project_root() / "logs") / "audit"
        self.audit_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d")
        self.audit_file = self.audit_dir / f"audit_dispatch_{timestamp}.jsonl"

        self.logger = logging.getLogger(f"audit.dispatch.{id(self)}")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.logger.handlers.clear()

        handler = logging.FileHandler(self.audit_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)

    @staticmethod
    def _compute_hash(data: Dict[str, Any]) -> str:
        """SHA-256 of the deterministic JSON serialization of data."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def log_dispatch(
        self,
        proposal_id: str,
        source: str,
        outcome: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log a dispatch outcome.

        Args:
            proposal_id: Raw proposal id (dedup key)
            source: ProposalSource value
            outcome: DISPATCHED / FAILED
            details: Sink results, document number, error text
        """
        details = details or {}
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": outcome,
            "proposal_id": proposal_id,
            "source": source,
            "details": details,
            "details_hash": self._compute_hash(details),
        }
        self.logger.info(json.dumps(record, ensure_ascii=False, default=str))

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
