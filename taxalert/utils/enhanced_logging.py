"""
Enhanced logging utilities with visual aids for readability and troubleshooting.

Features:
- Color-coded log levels
- Performance metrics tracking
"""

import logging
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal formatting."""
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_WHITE = '\033[97m'

    BOLD = '\033[1m'
    DIM = '\033[2m'

    RESET = '\033[0m'

    BG_RED = '\033[41m'


class EnhancedFormatter(logging.Formatter):
    """Custom formatter with color-coding for console output."""

    LEVEL_FORMATS = {
        logging.DEBUG: f"{Colors.CYAN}DEBUG{Colors.RESET}",
        logging.INFO: f"{Colors.GREEN}INFO{Colors.RESET}",
        logging.WARNING: f"{Colors.YELLOW}WARNING{Colors.RESET}",
        logging.ERROR: f"{Colors.BRIGHT_RED}{Colors.BOLD}ERROR{Colors.RESET}",
        logging.CRITICAL: f"{Colors.BG_RED}{Colors.BRIGHT_WHITE}{Colors.BOLD}CRITICAL{Colors.RESET}"
    }

    def format(self, record):
        levelname = self.LEVEL_FORMATS.get(record.levelno, record.levelname)

        name_color = Colors.BRIGHT_CYAN if 'pipeline' in record.name.lower() else Colors.CYAN
        colored_name = f"{name_color}{record.name}{Colors.RESET}"

        timestamp = f"{Colors.DIM}{self.formatTime(record, self.datefmt)}{Colors.RESET}"

        if record.levelno >= logging.ERROR:
            message = f"{Colors.BRIGHT_RED}{record.getMessage()}{Colors.RESET}"
        elif record.levelno >= logging.WARNING:
            message = f"{Colors.YELLOW}{record.getMessage()}{Colors.RESET}"
        elif record.levelno >= logging.INFO:
            message = record.getMessage()
        else:
            message = f"{Colors.DIM}{record.getMessage()}{Colors.RESET}"

        return f"{timestamp} - {colored_name} - {levelname} - {message}"


def log_performance(logger: logging.Logger, operation: str, duration: float,
                    details: Optional[Dict[str, Any]] = None):
    """Log performance metrics with color-coded duration."""
    if duration < 1:
        duration_color = Colors.GREEN
    elif duration < 10:
        duration_color = Colors.YELLOW
    elif duration < 60:
        duration_color = Colors.BRIGHT_YELLOW
    else:
        duration_color = Colors.RED

    logger.info(f"{Colors.BOLD}{operation}{Colors.RESET} completed in "
                f"{duration_color}{duration:.2f}s{Colors.RESET}")

    if details:
        for key, value in details.items():
            logger.info(f"  {Colors.CYAN}{key}:{Colors.RESET} {value}")


def setup_enhanced_logging(log_file: Optional[str] = None, console_level: int = logging.INFO,
                           file_level: int = logging.DEBUG) -> logging.Logger:
    """Set up root logging with the color console formatter and an optional plain log file."""
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(EnhancedFormatter(datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    return logger
