"""
Console output for configuration runs.
"""
import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < warning < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(self, level: str = "info"):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Supported: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.warnings: list[str] = []

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}")

    def warning(self, message: str) -> None:
        self.warnings.append(message)
        if self.level >= self.LEVELS["warning"]:
            print(f"[WARNING] {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}")
