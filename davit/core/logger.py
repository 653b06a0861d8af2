"""Status lines on stderr, so stdout stays free for diffs and tables"""

import sys
from .colors import Colors


class Logger:
    verbose = False

    @staticmethod
    def _emit(color: str, symbol: str, msg: str):
        print(f"{color}{symbol}{Colors.RESET} {msg}", file=sys.stderr, flush=True)

    @classmethod
    def info(cls, msg: str):
        cls._emit(Colors.BLUE, "ℹ", msg)

    @classmethod
    def success(cls, msg: str):
        cls._emit(Colors.GREEN, "✓", msg)

    @classmethod
    def warn(cls, msg: str):
        cls._emit(Colors.YELLOW, "⚠", msg)

    @classmethod
    def error(cls, msg: str):
        cls._emit(Colors.RED, "✗", msg)

    @classmethod
    def fatal(cls, msg: str):
        """Reserved for failures that leave the working tree in an unknown state"""
        print(f"{Colors.RED}{Colors.BOLD}✗✗ {msg}{Colors.RESET}", file=sys.stderr, flush=True)

    @classmethod
    def verbose_log(cls, msg: str):
        if cls.verbose:
            cls._emit(Colors.CYAN, "[VERBOSE]", msg)
