"""Help screen with the key bindings."""

from textual.app import ComposeResult
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Footer, Markdown

from ...config_manager import AppConfig
from ...utils.logger import get_ui_logger


class HelpScreen(Screen):
    """Help screen with usage information."""

    BINDINGS = [
        ("escape", "back", "Back"),
        ("q", "back", "Back"),
        ("question_mark", "back", "Back"),
    ]

    def __init__(self, app_config: AppConfig):
        super().__init__()
        self.app_config = app_config
        self.logger = get_ui_logger("help")

    def compose(self) -> ComposeResult:
        help_text = f"""
# {self.app_config.name} Help

## Navigation
- **Tab / Shift+Tab**: Move between the filters, toggles and tables
- **Up / Down**: Move the selection in the focused table
- **Type in a filter**: Narrow the list; version filters match every word against version or vendor

## Actions
- **Enter** (versions): Install, use, or uninstall depending on the version state
- **I**: Install the selected version
- **U**: Use the selected version (installs first when needed)
- **D**: Uninstall the selected version
- **C**: Copy `sdk use <candidate> <version>` to the clipboard (installs first when needed)
- **R**: Refresh candidates and versions
- **Esc**: Cancel a running download
- **?**: Toggle this help
- **Q**: Quit

## Columns
- **Installed**: the version is installed locally
- **Downloaded**: the archive is cached, installing skips the download
- **Used**: the version is the global default for its candidate
"""
        with Container():
            yield Markdown(help_text)
        yield Footer()

    def on_mount(self) -> None:
        self.logger.debug("Help screen shown")

    def action_back(self) -> None:
        self.app.pop_screen()
