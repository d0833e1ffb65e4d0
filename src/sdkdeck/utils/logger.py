"""Logging setup for SDK Deck.

Console output goes through rich; everything at DEBUG and above is also kept
in a rotating file under ``logs/``.  Levels are read from
``config/logging.yaml`` and default to quiet console output so log records do
not bleed into the TUI.
"""

import logging
import logging.handlers
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "sdkdeck"
LOG_FILE = "sdkdeck.log"


@dataclass
class LoggingSettings:
    """Levels, formats and rotation for the two handlers."""
    level: str = "INFO"
    console_level: str = "WARNING"
    file_level: str = "DEBUG"
    console_format: str = "%(message)s"
    file_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    modules: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], debug: bool = False) -> "LoggingSettings":
        formats = data.get("format") or {}
        rotation = data.get("rotation") or {}
        settings = cls(
            level=str(data.get("level", cls.level)).upper(),
            console_level=str(data.get("console_level", cls.console_level)).upper(),
            file_level=str(data.get("file_level", cls.file_level)).upper(),
            console_format=formats.get("console", cls.console_format),
            file_format=formats.get("file", cls.file_format),
            max_bytes=int(rotation.get("max_bytes", cls.max_bytes)),
            backup_count=int(rotation.get("backup_count", cls.backup_count)),
            modules={name: str(level).upper() for name, level in (data.get("modules") or {}).items()},
        )
        if debug:
            settings.level = "DEBUG"
            settings.console_level = "DEBUG"
            settings.modules = {name: "DEBUG" for name in settings.modules}
        return settings


class LoggerManager:
    """Owns the root handlers; one instance per process (``logger_manager``)."""

    def __init__(self):
        self.settings = LoggingSettings()
        self.logs_dir = Path("logs")
        self.console: Optional[Console] = None
        self.debug_mode = False
        self.initialized = False

    def initialize(self, config_dir: Optional[Path], debug: bool = False,
                   console: Optional[Console] = None, logs_dir: Optional[Path] = None) -> None:
        """Install the console and file handlers on the root logger.

        Args:
            config_dir: Directory holding ``logging.yaml``; None uses defaults
            debug: Force DEBUG everywhere
            console: Console to log through; a stderr console when omitted
            logs_dir: Where the rotating file goes (default ``logs``)
        """
        self.debug_mode = debug
        self.console = console or Console(stderr=True)
        if logs_dir is not None:
            self.logs_dir = logs_dir
        self.settings = LoggingSettings.from_mapping(self._read_config(config_dir), debug)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(self.settings.level)
        root.addHandler(self._console_handler())
        root.addHandler(self._file_handler())
        for name, level in self.settings.modules.items():
            logging.getLogger(name).setLevel(level)

        self.initialized = True
        self.get_logger(f"{ROOT_LOGGER}.logger").info(
            f"Logging to {self.logs_dir / LOG_FILE} (debug={'on' if debug else 'off'})"
        )

    def _read_config(self, config_dir: Optional[Path]) -> Dict[str, Any]:
        if config_dir is None:
            return {}
        path = config_dir / "logging.yaml"
        if not path.exists():
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            # logging is not up yet, so this goes straight to the console
            (self.console or Console(stderr=True)).print(
                f"[yellow]Ignoring unreadable {path}: {e}[/yellow]"
            )
            return {}

    def _console_handler(self) -> logging.Handler:
        handler = RichHandler(
            console=self.console,
            markup=False,
            rich_tracebacks=True,
            show_time=False,
            show_path=self.debug_mode,
        )
        handler.setLevel(self.settings.console_level)
        handler.setFormatter(logging.Formatter(self.settings.console_format))
        return handler

    def _file_handler(self) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.logs_dir / LOG_FILE,
            maxBytes=self.settings.max_bytes,
            backupCount=self.settings.backup_count,
            encoding='utf-8',
        )
        handler.setLevel(self.settings.file_level)
        handler.setFormatter(logging.Formatter(self.settings.file_format))
        return handler

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def set_debug_mode(self, debug: bool) -> None:
        """Switch the console handler and the sdkdeck loggers between DEBUG and the configured levels."""
        self.debug_mode = debug
        for handler in logging.getLogger().handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(logging.DEBUG if debug else self.settings.console_level)
        for name, level in self.settings.modules.items():
            logging.getLogger(name).setLevel(logging.DEBUG if debug else level)
        self.get_logger(f"{ROOT_LOGGER}.logger").info(f"Debug mode {'on' if debug else 'off'}")


logger_manager = LoggerManager()


def init_logging(config_dir: Optional[Path], debug: bool = False, console: Optional[Console] = None,
                 logs_dir: Optional[Path] = None) -> None:
    """Configure logging for the whole process; see ``LoggerManager.initialize``."""
    logger_manager.initialize(config_dir, debug, console, logs_dir)


def get_logger(name: str) -> logging.Logger:
    return logger_manager.get_logger(name)


def set_debug_mode(debug: bool) -> None:
    logger_manager.set_debug_mode(debug)


def get_app_logger() -> logging.Logger:
    return get_logger(f"{ROOT_LOGGER}.app")


def get_module_logger(module_name: str) -> logging.Logger:
    """Logger for a core module, e.g. ``sdkdeck.modules.install_pipeline``."""
    return get_logger(f"{ROOT_LOGGER}.modules.{module_name}")


def get_ui_logger(screen_name: str) -> logging.Logger:
    """Logger for a screen or widget, e.g. ``sdkdeck.ui.sdk_browser``."""
    return get_logger(f"{ROOT_LOGGER}.ui.{screen_name}")


def get_utils_logger(util_name: str) -> logging.Logger:
    return get_logger(f"{ROOT_LOGGER}.utils.{util_name}")
