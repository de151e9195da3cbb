"""Round audit log for the Supra threshold agent."""

import json
import os
import threading
from dataclasses import asdict

from supra_agent.models import RoundLog


class RoundLogger:
    """Handles structured logging of analysis rounds to JSONL format."""

    def __init__(self, log_file: str):
        """
        Initialize logger with output file path.

        Args:
            log_file: Path to JSONL log file (will be created if doesn't exist)
        """
        self.log_file = log_file
        self._lock = threading.Lock()

        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

    def log_round(self, round_log: RoundLog) -> None:
        """
        Append one round record to the JSONL file.

        Writes one JSON object per line and flushes after each write.
        Secrets are redacted before writing.

        Args:
            round_log: Complete round log record
        """
        log_dict = self._sanitize_log(asdict(round_log))

        # Rounds for several pairs can finish at the same time
        with self._lock:
            with open(self.log_file, "a") as f:
                json.dump(log_dict, f)
                f.write("\n")
                f.flush()

    def _sanitize_log(self, log_dict: dict) -> dict:
        """
        Redact string fields that look like they carry credentials.

        Args:
            log_dict: Log dictionary to sanitize

        Returns:
            Sanitized log dictionary
        """
        sensitive_patterns = [
            "api_key", "api-key", "secret", "password",
            "private_key", "token", "credential",
        ]

        for key, value in log_dict.items():
            if isinstance(value, str):
                lower_value = value.lower()
                for pattern in sensitive_patterns:
                    if pattern in lower_value and len(value) > 20:
                        log_dict[key] = "[REDACTED]"
                        break

        return log_dict
