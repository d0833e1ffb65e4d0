"""Main application class for SDK Deck."""

import sys
import subprocess
from typing import Optional

from rich.console import Console
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header

from .config_manager import ConfigManager
from .modules.backend import SdkBackend
from .modules.lifecycle import LifecycleController
from .modules.sdkman_backend import SdkmanBackend
from .utils.logger import init_logging, get_app_logger


def cleanup_terminal_state():
    """Leave the alternate screen and restore a usable terminal."""
    sys.stdout.write('\033[?1049l')  # alternate screen buffer
    sys.stdout.write('\033[?1000l\033[?1002l\033[?1003l\033[?1006l')  # mouse tracking
    sys.stdout.write('\033[?2004l')  # bracketed paste
    sys.stdout.write('\033[?25h')  # cursor
    sys.stdout.write('\033[0m')
    sys.stdout.flush()

    try:
        with open('/dev/tty', 'w') as tty:
            subprocess.run(['stty', 'sane'], check=False, timeout=1, stdin=tty,
                           stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (FileNotFoundError, subprocess.SubprocessError, OSError):
        pass


class SdkDeckApp(App):
    """SDK Deck TUI application."""

    CSS_PATH = "styles.css"
    TITLE = "SDK Deck"
    SUB_TITLE = "SDKMAN! candidates and versions"

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        Binding("f12", "force_quit", "", show=False, priority=True),
    ]

    def __init__(self, config_manager: ConfigManager, debug: bool = False,
                 backend: Optional[SdkBackend] = None):
        super().__init__()

        self.config_manager = config_manager
        self.debug_mode = debug
        self.console = Console(stderr=True)

        # Initialize logging system first
        init_logging(config_manager.config_dir, debug, self.console)
        self.logger = get_app_logger()

        self.app_config = config_manager.get_app_config()
        self.preferences = config_manager.get_preferences()
        self.backend = backend or SdkmanBackend(config_manager.get_sdkman_config())
        self.controller = LifecycleController(self.backend)

        self.logger.info(f"Application initialized - version: {self.app_config.version}")

        self.title = self.app_config.name
        self.sub_title = f"v{self.app_config.version}"

    def compose(self) -> ComposeResult:
        yield Header()
        yield Footer()

    def on_mount(self) -> None:
        self.theme = self.app_config.theme
        from .ui.screens.sdk_browser import SdkBrowserScreen
        self.push_screen(SdkBrowserScreen(self.controller, self.app_config, self.preferences))

    def action_quit(self) -> None:
        """Quit, asking first when a download would be abandoned or the user wants to confirm."""
        from .ui.screens.action_confirm import ConfirmActionModal

        if not self.controller.pipeline.is_idle:
            target = self.controller.pipeline.target
            name = target.display_name if target else "the running operation"
            message = f"{name} is still in progress. Cancel it and exit?"
        elif self.preferences.confirm_exit:
            message = f"Exit {self.app_config.name}?"
        else:
            self._exit_app()
            return

        def handle_result(confirmed: bool) -> None:
            if confirmed:
                self._exit_app()

        self.push_screen(ConfirmActionModal("Confirm exit", message), handle_result)

    def action_force_quit(self) -> None:
        """Exit without asking (F12)."""
        self._exit_app()

    def _exit_app(self) -> None:
        if self.controller.cancel():
            self.logger.info("Cancelled running download on exit")
        self.logger.info("Application exiting")
        self.exit()

    def on_unmount(self) -> None:
        cleanup_terminal_state()
