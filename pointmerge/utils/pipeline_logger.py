#!/usr/bin/env python3
"""
Pipeline Logger Module
Console and optional file logging for registration runs

Author: Reconstruction Team
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class PipelineLogger:
    """Attach console/file handlers to the pointmerge logger hierarchy."""

    def __init__(self, name="pointmerge", log_file=None, level=logging.INFO):
        """
        Initialize the logger

        Args:
            name: Logger name. Module loggers below it (pointmerge.*) inherit
                the handlers.
            log_file: Path to log file (optional)
            level: Logging level
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Clear existing handlers
        self.logger.handlers.clear()

        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        self.log_file = None
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)
            self.log_file = log_path

    def close(self):
        """Flush and detach all handlers."""
        for handler in list(self.logger.handlers):
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)
