"""
Process-wide logging for the EV range prediction engine

All module loggers hang off the ``ev_range`` logger. Console output goes to
stderr so command output on stdout stays machine readable.
"""

import logging
import os
import sys
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from config.logging_config import (
    LOG_DIR,
    get_logging_config,
    is_module_logging_enabled,
    module_log_level,
)

ROOT_LOGGER_NAME = 'ev_range'

FORMATS = {
    'detailed': '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
    'simple': '%(levelname)s - %(name)s - %(message)s',
    'minimal': '%(message)s',
}


class EVRangeLogger:
    """
    Owns the handlers of the ``ev_range`` logger and the optional per-component
    detail files (one file per component and run, shared by all subjects).
    """

    def __init__(self,
                 log_level: str = "WARNING",
                 enable_console: bool = True,
                 enable_file: bool = False,
                 log_dir: str = LOG_DIR,
                 detailed_logging: bool = False,
                 log_format: str = "minimal"):
        self.log_level = getattr(logging, log_level.upper())
        self.enable_console = enable_console
        self.enable_file = enable_file
        self.log_dir = log_dir
        self.detailed_logging = detailed_logging
        self.log_format = log_format if log_format in FORMATS else 'minimal'
        self.log_file: Optional[str] = None

        self._detail_files: Dict[str, str] = {}
        self._detail_lock = threading.Lock()
        self._run_stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        if self.enable_file or self.detailed_logging:
            os.makedirs(self.log_dir, exist_ok=True)

        self._configure()

    def _configure(self):
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.logger.setLevel(self.log_level)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(FORMATS[self.log_format])

        if self.enable_console:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(formatter)
            self.logger.addHandler(console)

        if self.enable_file:
            self.log_file = os.path.join(self.log_dir, f'ev_range_{self._run_stamp}.log')
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    def get_logger(self, name: str = None) -> logging.Logger:
        """Module logger ``ev_range.<name>`` with its switch and level floor applied"""
        if not name:
            return self.logger
        logger = logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
        logger.disabled = not is_module_logging_enabled(name)
        floor = module_log_level(name)
        if floor is not None:
            logger.setLevel(max(self.log_level, getattr(logging, floor.upper())))
        else:
            logger.setLevel(logging.NOTSET)
        return logger

    def log(self, level: int, message: str, module: str = None):
        self.get_logger(module).log(level, message)

    def print_summary(self, title: str, data: Dict[str, Any]):
        """Human readable block of key/value lines on stderr"""
        if not self.enable_console:
            return
        rule = '=' * 50
        lines = [f"\n{rule}", title, rule]
        for key, value in data.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool) and abs(value) >= 1000:
                lines.append(f"  {key}: {value:,}")
            else:
                lines.append(f"  {key}: {value}")
        lines.append(rule)
        print("\n".join(lines), file=sys.stderr)

    def _detail_file(self, component: str, subject_id: str) -> str:
        path = self._detail_files.get(component)
        if path is None:
            path = os.path.join(self.log_dir, f"{component}_{self._run_stamp}.log")
            with open(path, 'w', encoding='utf-8') as f:
                f.write(f"Detailed log: {component}\n")
                f.write(f"Started: {datetime.now().isoformat()} (first subject {subject_id})\n")
                f.write(f"{'=' * 60}\n\n")
            self._detail_files[component] = path
        return path

    def log_detailed(self, message: str, component: str, subject_id: str = "unknown"):
        """Append one line to the component's detail file; a no-op unless detailed logging is on"""
        if not self.detailed_logging:
            return
        with self._detail_lock:
            path = self._detail_file(component, subject_id)
            with open(path, 'a', encoding='utf-8') as f:
                f.write(f"[{subject_id}] {message}\n")

    def get_status(self) -> Dict[str, Any]:
        return {
            'log_level': logging.getLevelName(self.log_level),
            'enable_console': self.enable_console,
            'enable_file': self.enable_file,
            'log_file': self.log_file,
            'detailed_logging': self.detailed_logging,
            'detail_files': dict(self._detail_files),
        }


_global_logger: Optional[EVRangeLogger] = None
_global_lock = threading.Lock()


def get_global_logger() -> EVRangeLogger:
    global _global_logger
    if _global_logger is None:
        with _global_lock:
            if _global_logger is None:
                _global_logger = EVRangeLogger(**get_logging_config())
    return _global_logger


def setup_logger(mode: str = None, **overrides) -> EVRangeLogger:
    """Replace the process-wide logger with one built from ``mode`` plus explicit overrides"""
    global _global_logger
    settings = get_logging_config(mode)
    settings.update(overrides)
    with _global_lock:
        _global_logger = EVRangeLogger(**settings)
    return _global_logger


def get_logger(name: str = None) -> logging.Logger:
    return get_global_logger().get_logger(name)


def _module_level(level: int):
    def emit(message: str, module: str = None):
        get_global_logger().log(level, message, module)
    return emit


debug = _module_level(logging.DEBUG)
info = _module_level(logging.INFO)
warning = _module_level(logging.WARNING)
error = _module_level(logging.ERROR)
critical = _module_level(logging.CRITICAL)


def print_summary(title: str, data: Dict[str, Any]):
    get_global_logger().print_summary(title, data)


def log_detailed(message: str, component: str, subject_id: str = "unknown"):
    get_global_logger().log_detailed(message, component, subject_id)
