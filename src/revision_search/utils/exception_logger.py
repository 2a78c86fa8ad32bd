"""Centralized exception logger for revision search.

Writes failed searches and failed git commands to a timestamped JSON log
file so a failed query can be diagnosed after the fact:
- Timestamp and process ID in the log file name
- Complete stack traces
- Thread information
- Command or query context
"""

import json
import os
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import CONFIG_DIR_NAME


class ExceptionLogger:
    """Centralized exception logging facility."""

    _instance: Optional["ExceptionLogger"] = None
    log_file_path: Optional[Path] = None

    def __init__(self, log_file_path: Path):
        self.log_file_path = log_file_path

    @classmethod
    def initialize(cls, log_root: Path) -> "ExceptionLogger":
        """Initialize the global exception logger (idempotent singleton).

        WARNING: This is a singleton. If already initialized, returns the existing
        instance rather than creating a new one. Tests should call ``reset()``
        if they need fresh instances.

        Args:
            log_root: Directory under which ``.revision-search/`` is created

        Returns:
            Initialized ExceptionLogger instance (singleton)
        """
        if cls._instance is not None:
            return cls._instance

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        pid = os.getpid()

        # created on the first logged exception
        log_file_path = log_root / CONFIG_DIR_NAME / f"error_{timestamp}_{pid}.log"
        instance = cls(log_file_path)
        cls._instance = instance

        return instance

    @classmethod
    def get_instance(cls) -> Optional["ExceptionLogger"]:
        """Get the current exception logger instance, if initialized."""
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the current instance."""
        cls._instance = None

    def log_exception(
        self,
        exception: BaseException,
        thread_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an exception with full context.

        Args:
            exception: The exception to log
            thread_name: Name of the thread where exception occurred (optional)
            context: Additional context data to include in log (optional)
        """
        if not self.log_file_path:
            return

        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "thread": thread_name or threading.current_thread().name,
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "stack_trace": traceback.format_exc(),
            "context": context or {},
        }

        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, indent=2, default=str))
            f.write("\n---\n")
