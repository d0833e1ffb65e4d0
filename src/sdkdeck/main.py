#!/usr/bin/env python3
"""
SDK Deck - browse, install and switch SDKMAN! candidates from the terminal
"""

import atexit
import signal
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console

from .app import SdkDeckApp, cleanup_terminal_state
from .config_manager import ConfigManager

console = Console()


def _on_sigterm(signum, frame):
    cleanup_terminal_state()
    sys.exit(0)


def _load_config(config_dir: Path, sdkman_dir: Optional[Path]) -> ConfigManager:
    """Read the configuration up front so a broken file fails before the TUI starts."""
    config_manager = ConfigManager(config_dir, sdkman_home=sdkman_dir)
    try:
        config_manager.get_app_config()
    except FileNotFoundError as e:
        raise click.ClickException(str(e))
    except KeyError as e:
        raise click.ClickException(f"{config_dir / 'app.yaml'} is missing app.{e.args[0]}")
    except yaml.YAMLError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    return config_manager


@click.command()
@click.option('--config-dir', '-c', default='config', type=click.Path(file_okay=False, path_type=Path),
              help='Directory containing app.yaml and logging.yaml')
@click.option('--sdkman-dir', type=click.Path(file_okay=False, path_type=Path),
              help='SDKMAN! installation directory; overrides app.yaml and $SDKMAN_DIR')
@click.option('--debug', is_flag=True, help='Verbose logging and startup details')
def main(config_dir: Path, sdkman_dir: Optional[Path], debug: bool):
    """Browse, install and switch SDKMAN! candidates."""
    signal.signal(signal.SIGTERM, _on_sigterm)
    atexit.register(cleanup_terminal_state)

    config_manager = _load_config(config_dir, sdkman_dir)

    if debug:
        app_config = config_manager.get_app_config()
        console.print(f"[blue]{app_config.name} {app_config.version}[/blue]")
        console.print(f"[dim]config: {config_dir.resolve()}[/dim]")
        console.print(f"[dim]SDKMAN!: {config_manager.get_sdkman_config().home}[/dim]")

    try:
        SdkDeckApp(config_manager, debug=debug).run()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        if debug:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
