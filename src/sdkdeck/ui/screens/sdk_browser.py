"""Candidate/version browser screen."""

from typing import Callable, List, Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Button, Checkbox, DataTable, Footer, Header, Input, Label, ProgressBar

from ...config_manager import AppConfig, PreferencesConfig
from ...modules.errors import BusyError, CancelledError, SdkDeckError
from ...modules.lifecycle import LifecycleController
from ...modules.filtered_collection import FilteredCollection
from ...modules.models import InstallProgress
from ...modules.registries import DOWNLOADED_ONLY, INSTALLED_ONLY, USED_ONLY
from ...utils.logger import get_ui_logger
from .action_confirm import ConfirmActionModal
from .help import HelpScreen

logger = get_ui_logger("sdk_browser")

CHECK = "✓"

VERSION_TOGGLES = {
    "version-installed": INSTALLED_ONLY,
    "version-downloaded": DOWNLOADED_ONLY,
    "version-used": USED_ONLY,
}


class SdkBrowserScreen(Screen):
    """Two panes: candidates on the left, versions of the selected candidate on the right."""

    BINDINGS = [
        ("i", "install", "Install"),
        ("u", "use", "Use"),
        ("d", "uninstall", "Uninstall"),
        ("c", "copy_use_command", "Copy use"),
        ("r", "refresh", "Refresh"),
        ("escape", "cancel_download", "Cancel download"),
        ("question_mark", "help", "Help"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, controller: LifecycleController, app_config: AppConfig,
                 preferences: PreferencesConfig):
        super().__init__()
        self.controller = controller
        self.app_config = app_config
        self.preferences = preferences
        self._subscriptions: List[Tuple[object, str]] = []

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="panes"):
            with Vertical(id="candidate-pane", classes="pane"):
                yield Label("Candidates", classes="pane-title")
                yield Input(placeholder="Filter candidates", id="candidate-filter")
                yield Checkbox("Installed", id="candidate-installed")
                yield DataTable(id="candidate-table", cursor_type="row", zebra_stripes=True)
            with Vertical(id="version-pane", classes="pane"):
                yield Label("Versions", classes="pane-title", id="version-title")
                yield Input(placeholder="Filter versions", id="version-filter")
                with Horizontal(id="version-toggles"):
                    yield Checkbox("Installed", id="version-installed")
                    yield Checkbox("Downloaded", id="version-downloaded")
                    yield Checkbox("Used", id="version-used")
                yield DataTable(id="version-table", cursor_type="row", zebra_stripes=True)
        with Horizontal(id="status-bar"):
            yield Label("", id="status-label")
            yield ProgressBar(id="install-progress", total=100, show_eta=False)
            yield Button("Cancel", id="cancel-download", variant="error", disabled=True)
        yield Footer()

    def on_mount(self) -> None:
        candidate_table = self.query_one("#candidate-table", DataTable)
        candidate_table.add_columns("Name", "Installed")
        version_table = self.query_one("#version-table", DataTable)
        version_table.add_columns("Vendor", "Version", "Installed", "Downloaded", "Used")

        controller = self.controller
        self._watch(controller.candidates.changed, lambda _: self._render_candidates())
        self._watch(controller.candidates.selection.changed,
                    lambda _: self._sync_cursor("#candidate-table", controller.candidates))
        self._watch(controller.versions.changed, lambda _: self._render_versions())
        self._watch(controller.versions.selection.changed,
                    lambda _: self._sync_cursor("#version-table", controller.versions))
        self._watch(controller.pipeline.progress, self._on_progress)
        self._watch(controller.pipeline.busy, self._on_busy_changed)
        self._watch(controller.pipeline.downloading, self._on_downloading_changed)
        self._watch(controller.refreshing_versions, self._on_refreshing_changed)
        self._watch(controller.last_error, self._on_background_error)

        self._start()

    def on_unmount(self) -> None:
        for source, sub_id in self._subscriptions:
            source.unsubscribe(sub_id)
        self._subscriptions.clear()

    def _watch(self, source, callback: Callable) -> None:
        self._subscriptions.append((source, source.subscribe(callback)))

    # -- rendering -----------------------------------------------------------

    def _render_candidates(self) -> None:
        table = self.query_one("#candidate-table", DataTable)
        registry = self.controller.candidates
        table.clear()
        for entry in registry.visible_items():
            table.add_row(entry.name, str(entry.installed_count or ""), key=entry.id)
        self._sync_cursor("#candidate-table", registry)

    def _render_versions(self) -> None:
        table = self.query_one("#version-table", DataTable)
        registry = self.controller.versions
        table.clear()
        for entry in registry.visible_items():
            table.add_row(
                entry.vendor or "",
                entry.version.version,
                CHECK if entry.installed else "",
                CHECK if entry.downloaded else "",
                CHECK if entry.active else "",
                key=entry.version_id,
            )
        self._sync_cursor("#version-table", registry)
        candidate = registry.candidate
        title = self.query_one("#version-title", Label)
        title.update(f"Versions - {candidate.name}" if candidate else "Versions")

    def _sync_cursor(self, selector: str, collection: FilteredCollection) -> None:
        table = self.query_one(selector, DataTable)
        index = collection.selection.index
        if index is not None and index != table.cursor_row:
            table.move_cursor(row=index)

    def _on_progress(self, progress: InstallProgress) -> None:
        bar = self.query_one("#install-progress", ProgressBar)
        if progress.indeterminate:
            bar.update(total=None)
        else:
            bar.update(total=100, progress=progress.percent)
        target = self.controller.pipeline.target
        label = progress.label
        if label and target is not None:
            label = f"{label} {target.display_name}"
        self.query_one("#status-label", Label).update(label)

    def _on_busy_changed(self, busy: bool) -> None:
        for selector in ("#candidate-filter", "#candidate-installed", "#candidate-table"):
            self.query_one(selector).disabled = busy

    def _on_downloading_changed(self, downloading: bool) -> None:
        button = self.query_one("#cancel-download", Button)
        button.disabled = not downloading
        if downloading:
            button.focus()

    def _on_refreshing_changed(self, refreshing: bool) -> None:
        if refreshing and self.controller.pipeline.is_idle:
            self.query_one("#status-label", Label).update("Refreshing...")
        elif not refreshing and self.controller.pipeline.is_idle:
            self.query_one("#status-label", Label).update("")

    def _on_background_error(self, error: Optional[SdkDeckError]) -> None:
        if error is not None:
            self.notify(str(error), title="Refresh failed", severity="error")

    # -- input -------------------------------------------------------------

    @on(Input.Changed, "#candidate-filter")
    def on_candidate_filter_changed(self, event: Input.Changed) -> None:
        self.controller.candidates.filter.set_text(event.value)

    @on(Input.Changed, "#version-filter")
    def on_version_filter_changed(self, event: Input.Changed) -> None:
        self.controller.versions.filter.set_text(event.value)

    @on(Checkbox.Changed, "#candidate-installed")
    def on_candidate_installed_changed(self, event: Checkbox.Changed) -> None:
        self.controller.candidates.filter.toggle(INSTALLED_ONLY).set(event.value)

    @on(Checkbox.Changed, "#version-toggles Checkbox")
    def on_version_toggle_changed(self, event: Checkbox.Changed) -> None:
        toggle = VERSION_TOGGLES[event.checkbox.id]
        self.controller.versions.filter.toggle(toggle).set(event.value)

    @on(DataTable.RowHighlighted, "#candidate-table")
    def on_candidate_highlighted(self, event: DataTable.RowHighlighted) -> None:
        entry = self._highlighted(event, self.controller.candidates.visible_items(), lambda e: e.id)
        if entry is not None:
            self.controller.candidates.selection.set(entry)

    @on(DataTable.RowHighlighted, "#version-table")
    def on_version_highlighted(self, event: DataTable.RowHighlighted) -> None:
        entry = self._highlighted(event, self.controller.versions.visible_items(), lambda e: e.version_id)
        if entry is not None:
            self.controller.versions.selection.set(entry)

    @on(DataTable.RowSelected, "#version-table")
    def on_version_row_selected(self, event: DataTable.RowSelected) -> None:
        version = self.controller.selected_version
        if version is None:
            return
        if version.active:
            self._confirm("Confirm uninstall", f"Uninstall {version.display_name}?", self._run_primary)
        elif version.installed:
            self._confirm("Confirm use", f"Set {version.display_name} as your global SDK?", self._run_primary)
        else:
            self._confirm("Confirm install", f"Install {version.display_name}?", self._run_primary)

    @on(Button.Pressed, "#cancel-download")
    def on_cancel_pressed(self) -> None:
        self.action_cancel_download()

    def _highlighted(self, event: DataTable.RowHighlighted, visible, key_of):
        table = event.data_table
        if event.row_key is None or event.row_key.value is None:
            return None
        # stale highlight from a re-render; the cursor has moved since
        if event.cursor_row != table.cursor_row:
            return None
        for entry in visible:
            if key_of(entry) == event.row_key.value:
                return entry
        return None

    # -- actions -----------------------------------------------------------

    def action_install(self) -> None:
        version = self.controller.selected_version
        if version is not None:
            self._confirm("Confirm install", f"Install {version.display_name}?", self._run_install)

    def action_use(self) -> None:
        version = self.controller.selected_version
        if version is not None:
            self._confirm("Confirm use", f"Set {version.display_name} as your global SDK?", self._run_use)

    def action_uninstall(self) -> None:
        version = self.controller.selected_version
        if version is not None and version.installed:
            self._confirm("Confirm uninstall", f"Uninstall {version.display_name}?", self._run_uninstall)

    def action_copy_use_command(self) -> None:
        version = self.controller.selected_version
        if version is None:
            return
        if version.installed:
            self._run_copy_use_command()
        else:
            self._confirm("Confirm install", f"Install {version.display_name}?", self._run_copy_use_command)

    def action_refresh(self) -> None:
        self._run_refresh()

    def action_cancel_download(self) -> None:
        if self.controller.cancel():
            self.query_one("#status-label", Label).update("Cancelling...")

    def action_help(self) -> None:
        self.app.push_screen(HelpScreen(self.app_config))

    def action_quit(self) -> None:
        self.app.action_quit()

    def _confirm(self, title: str, message: str, proceed: Callable[[], None]) -> None:
        if not self.preferences.confirm_actions:
            proceed()
            return

        def handle_result(confirmed: bool) -> None:
            if confirmed:
                proceed()

        self.app.push_screen(ConfirmActionModal(title, message), handle_result)

    # -- workers -----------------------------------------------------------

    @work(exit_on_error=False)
    async def _start(self) -> None:
        await self._guard("Loading", self.controller.start())

    @work(exit_on_error=False)
    async def _run_refresh(self) -> None:
        await self._guard("Refresh", self.controller.refresh())

    @work(exit_on_error=False)
    async def _run_install(self) -> None:
        await self._guard("Install", self.controller.install())

    @work(exit_on_error=False)
    async def _run_use(self) -> None:
        await self._guard("Use", self.controller.use())

    @work(exit_on_error=False)
    async def _run_uninstall(self) -> None:
        await self._guard("Uninstall", self.controller.uninstall())

    @work(exit_on_error=False)
    async def _run_primary(self) -> None:
        await self._guard("Action", self.controller.primary_action())

    @work(exit_on_error=False)
    async def _run_copy_use_command(self) -> None:
        command = await self._guard("Copy", self.controller.copy_use_command())
        if command:
            self.app.copy_to_clipboard(command)
            self.notify(f"{command}\ncopied to clipboard", title="Copied")

    async def _guard(self, operation: str, coroutine):
        """Await ``coroutine`` and report core errors as notifications."""
        try:
            return await coroutine
        except CancelledError:
            self.notify("Download cancelled", title=operation)
        except BusyError as e:
            self.notify(str(e), title=operation, severity="warning")
        except SdkDeckError as e:
            logger.error(f"{operation} failed: {e}")
            self.notify(str(e), title=f"{operation} failed", severity="error")
        return None

