"""
Logging setup for the tutor API

- Color-coded levels with icons when attached to a terminal
- Structured key/value payloads for request and session events
- Section banners to group the log lines of one tutoring turn
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


class ColoredFormatter(logging.Formatter):
    """Single-line formatter: time, icon, level, logger name, message."""

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last component of the logger name
    SECTION_ICONS = {
        'main': '🌐',
        'session_controller': '💬',
        'curriculum': '📚',
        'curriculum_admin': '🗂️',
        'ocr': '📄',
        'ai_gateway': '🤖',
        'session_summarizer': '📝',
        'topic_discovery': '🔎',
        'assessment_store': '💾',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{Colors.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        icon = self.SECTION_ICONS.get(record.name.split('.')[-1], self.ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]
        level_name = self._paint(LEVEL_COLORS.get(record.levelname, Colors.RESET), f"{record.levelname:8s}")

        formatted = (
            f"{self._paint(Colors.TIMESTAMP, f'[{timestamp}]')} "
            f"{icon} {level_name} "
            f"{self._paint(Colors.BOLD, record.name)} | {record.getMessage()}"
        )
        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


def format_data(data: Dict[str, Any], indent: int = 2) -> str:
    """Render a flat or nested dict as indented key: value lines."""
    lines = []
    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"{' ' * indent}{key}:")
            lines.append(format_data(value, indent + 2))
        elif isinstance(value, list) and len(value) > 5:
            lines.append(f"{' ' * indent}{key}: {value[:3]} ... ({len(value)} items total)")
        else:
            lines.append(f"{' ' * indent}{key}: {value}")
    return "\n".join(lines)


class StructuredLogger:
    """Wraps a logging.Logger with data payloads and section banners."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def _with_data(self, message: str, data: Optional[Dict[str, Any]]) -> str:
        return f"{message}\n{format_data(data)}" if data else message

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        separator = "=" * 80
        self.logger.info(self._with_data(f"\n{separator}\n📋 {title.upper()}", data) + f"\n{separator}")

    def subsection(self, title: str, data: Optional[Dict[str, Any]] = None):
        self.logger.info(self._with_data(f"  → {title}", data))

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.debug(self._with_data(message, data))

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.info(self._with_data(message, data))

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.warning(self._with_data(message, data))

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        if error is not None:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self.logger.error(self._with_data(message, data), exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.info(self._with_data(f"✅ {message}", data))

    def request(self, method: str, path: str, session_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        payload = {"session_id": session_id[:12] + "..." if session_id and len(session_id) > 12 else session_id}
        payload.update(data or {})
        self.logger.info(self._with_data(f"📥 REQUEST: {method} {path}", payload))

    def response(self, status: int, path: str, duration: Optional[float] = None, data: Optional[Dict[str, Any]] = None):
        payload = {"status": status, "duration_ms": f"{duration * 1000:.2f}" if duration else None}
        payload.update(data or {})
        self.logger.info(self._with_data(f"📤 RESPONSE: {status} {path}", payload))


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Install the colored formatter on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Quiet SDK and HTTP client chatter
    for noisy in ('asyncio', 'httpx', 'httpcore', 'urllib3', 'openai', 'anthropic'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name, logging.getLogger(name))
