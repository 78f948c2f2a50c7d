"""Centralized exception logger for Submodule Guard.

Writes one JSON entry per exception (timestamp, thread, stack trace and
command context) to an ``error_<timestamp>_<pid>.log`` file. Checks write no
files by default; the CLI only initializes this logger when an error-log
directory is configured.
"""

import json
import os
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class ExceptionLogger:
    """Process-wide exception log, used mainly for failed git commands."""

    _instance: Optional["ExceptionLogger"] = None

    def __init__(self, log_file_path: Path):
        self.log_file_path = log_file_path
        self._lock = threading.Lock()

    @classmethod
    def initialize(cls, log_dir: Path) -> "ExceptionLogger":
        """Initialize the global exception logger (idempotent singleton).

        Tests that need a fresh instance should call ``reset()`` first.

        Args:
            log_dir: Directory receiving the log file

        Returns:
            Initialized ExceptionLogger instance (singleton)
        """
        if cls._instance is not None:
            return cls._instance

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = log_dir / f"error_{timestamp}_{os.getpid()}.log"
        log_file_path.touch()

        cls._instance = cls(log_file_path)
        return cls._instance

    @classmethod
    def get_instance(cls) -> Optional["ExceptionLogger"]:
        """Get the current exception logger instance, or None if not initialized."""
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def log_exception(
        self,
        exception: BaseException,
        thread_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an exception with its context to the log file.

        Args:
            exception: The exception to log
            thread_name: Name of the thread where exception occurred (optional)
            context: Additional context data to include in log (optional)
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "thread": thread_name or threading.current_thread().name,
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "stack_trace": traceback.format_exc(),
            "context": context or {},
        }

        # Probe workers log concurrently
        with self._lock:
            with open(self.log_file_path, "a") as f:
                f.write(json.dumps(log_entry, indent=2, default=str))
                f.write("\n---\n")

    def install_thread_exception_hook(self) -> None:
        """Capture uncaught exceptions raised in worker threads."""

        def global_thread_exception_handler(args):
            self.log_exception(
                exception=args.exc_value,
                thread_name=args.thread.name if args.thread else None,
                context={"exc_type": args.exc_type.__name__},
            )

        threading.excepthook = global_thread_exception_handler
