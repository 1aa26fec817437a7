"""Enhanced logging for update runs."""

import logging
import os
import sys


class Colors:
    """ANSI color codes (only used when TTY detected)"""
    RESET = '\033[0m'
    GREEN = '\033[92m'     # Installed
    BLUE = '\033[94m'      # Up to date
    YELLOW = '\033[93m'    # Skipped
    RED = '\033[91m'       # Failed
    CYAN = '\033[96m'      # Run summary
    BOLD = '\033[1m'


def _should_use_colors() -> bool:
    """Check if colored output should be enabled"""
    force_color = os.getenv('FORCE_COLOR', '').lower()
    if force_color in ('1', 'true', 'yes', 'on'):
        return True
    elif force_color in ('0', 'false', 'no', 'off'):
        return False

    # Auto-detect: use colors if stderr is a TTY
    return sys.stderr.isatty()


# Global flag for color usage
USE_COLORS = _should_use_colors()


def _colorize(text: str, color: str) -> str:
    """Apply color to text if colors are enabled"""
    if USE_COLORS:
        return f"{color}{text}{Colors.RESET}"
    return text


_OUTCOME_COLORS = {
    "installed": Colors.GREEN,
    "up-to-date": Colors.BLUE,
    "skipped": Colors.YELLOW,
    "failed": Colors.RED,
    "cancelled": Colors.YELLOW,
}


class RunLogger:
    """Logs per-target outcomes and a summary for each update run"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_outcome(self, label: str, outcome: str, detail: str = ""):
        """Log the outcome of one target"""
        prefix = _colorize(f"[Update:{outcome}]", _OUTCOME_COLORS.get(outcome, Colors.RESET))
        message = f"{prefix} {label}"
        if detail:
            message += f" - {detail}"
        if outcome == "failed":
            self.logger.error(message)
        else:
            self.logger.info(message)

    def log_summary(self, report, duration_ms: int):
        """Log the run summary"""
        prefix = _colorize("[UpdateRun]", Colors.CYAN)
        if report.failed:
            status = _colorize("✗ ERROR", Colors.RED)
        else:
            status = _colorize("✓", Colors.GREEN)

        self.logger.info(
            f"{prefix} {status} Run completed - duration={duration_ms}ms, "
            f"installed={len(report.installed)}, up_to_date={len(report.up_to_date)}, "
            f"skipped={len(report.skipped)}, failed={len(report.failed)}"
        )
