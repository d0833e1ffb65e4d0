"""Configuration for SDK Deck, read from YAML files in the config directory."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .utils.logger import get_utils_logger

DEFAULT_SDKMAN_HOME = "~/.sdkman"
DEFAULT_API_URL = "https://api.sdkman.io/2"


@dataclass
class AppConfig:
    """The ``app`` and ``ui`` sections of app.yaml."""
    name: str
    version: str
    description: str
    theme: str
    min_width: int
    min_height: int


@dataclass
class PreferencesConfig:
    """User preferences; read here, persisted elsewhere."""
    confirm_actions: bool = True
    confirm_exit: bool = True
    keep_downloads_available: bool = True


@dataclass
class SdkmanConfig:
    """Location of the SDKMAN! installation and broker API settings."""
    home: Path
    api_url: str = DEFAULT_API_URL
    command_timeout: float = 600.0
    request_timeout: float = 30.0
    download_chunk_size: int = 64 * 1024
    unzip_executable: str = "unzip"
    tar_executable: str = "tar"
    keep_downloads_available: bool = True


class ConfigManager:
    """Loads ``<name>.yaml`` files once and builds typed views over them."""

    def __init__(self, config_dir: Path = Path("config"), sdkman_home: Optional[Path] = None):
        self.config_dir = config_dir
        self.sdkman_home = sdkman_home
        self._documents: Dict[str, Dict[str, Any]] = {}
        self.logger = get_utils_logger("config_manager")

    def load_config(self, config_name: str) -> Dict[str, Any]:
        """Return the parsed ``<config_name>.yaml``, reading it on first use.

        Raises:
            FileNotFoundError: the file does not exist
            yaml.YAMLError: the file is not valid YAML
        """
        document = self._documents.get(config_name)
        if document is None:
            document = self._read(self.config_dir / f"{config_name}.yaml")
            self._documents[config_name] = document
        return document

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            self.logger.error(f"Missing config file: {path}")
            raise FileNotFoundError(f"Config file not found: {path}")
        self.logger.debug(f"Reading {path}")
        try:
            with open(path, 'r', encoding='utf-8') as stream:
                return yaml.safe_load(stream) or {}
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML in {path}: {e}")
            raise

    def _section(self, name: str) -> Dict[str, Any]:
        return self.load_config("app").get(name) or {}

    def get_app_config(self) -> AppConfig:
        """Application name, version and UI settings.

        Raises:
            KeyError: ``app.name`` or ``app.version`` is missing
        """
        app = self._section("app")
        ui = self._section("ui")
        terminal = ui.get("terminal") or {}
        try:
            return AppConfig(
                name=app["name"],
                version=str(app["version"]),
                description=app.get("description", ""),
                theme=ui.get("theme", "textual-dark"),
                min_width=int(terminal.get("min_width", 100)),
                min_height=int(terminal.get("min_height", 24)),
            )
        except KeyError as e:
            self.logger.error(f"app.yaml is missing app.{e.args[0]}")
            raise

    def get_preferences(self) -> PreferencesConfig:
        """User preferences, with defaults for anything not set."""
        section = self._section("preferences")
        defaults = PreferencesConfig()
        return PreferencesConfig(**{
            key: bool(section.get(key, getattr(defaults, key)))
            for key in ("confirm_actions", "confirm_exit", "keep_downloads_available")
        })

    def get_sdkman_config(self) -> SdkmanConfig:
        """SDKMAN! settings.

        ``home`` resolves, in order, from the ``sdkman_home`` given to the
        manager (the ``--sdkman-dir`` option), the config file, ``$SDKMAN_DIR``
        and ``~/.sdkman``.
        """
        section = self._section("sdkman")
        home = (self.sdkman_home or section.get("home") or os.environ.get("SDKMAN_DIR")
                or DEFAULT_SDKMAN_HOME)
        sdkman_config = SdkmanConfig(
            home=Path(os.path.expandvars(str(home))).expanduser(),
            api_url=str(section.get("api_url", DEFAULT_API_URL)).rstrip("/"),
            command_timeout=float(section.get("command_timeout", 600.0)),
            request_timeout=float(section.get("request_timeout", 30.0)),
            download_chunk_size=int(section.get("download_chunk_size", 64 * 1024)),
            unzip_executable=section.get("unzip_executable") or "unzip",
            tar_executable=section.get("tar_executable") or "tar",
            keep_downloads_available=self.get_preferences().keep_downloads_available,
        )
        self.logger.debug(f"SDKMAN! home: {sdkman_config.home}")
        return sdkman_config
