"""Init command implementation"""

import json
from datetime import datetime

import click
from rich.console import Console

from ..util import INSTANCE_FLAG, get_instance_path, is_initialized

console = Console()

DEFAULT_CONFIG = """[server]
host = "127.0.0.1"
port = 18890

[cors]
allow_origins = ["http://localhost:3000"]
allow_credentials = true
allow_methods = ["*"]
allow_headers = ["*"]

[panel]
# context = "workspace:my-repo"
show_all_terminals = false
# default_directory = "~/projects"
new_tab_lock_window = 0.5
refresh_delay = 0.3
keep_last_tab = true

[host]
shell = "bash"
shell_args = ["--norc", "--noprofile"]
scrollback_bytes = 65536
"""


@click.command(name="init", help="Initialize a new termpanel instance")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def init(path: str = None):
    """Initialize a new termpanel instance

    Args:
        path: Instance directory path (default: ~/.termpanel)
    """
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(f"[red]Error: Already initialized at {instance_path}[/red]")
        raise click.Abort()

    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(f"[red]Error: Directory is not empty: {instance_path}[/red]")
        raise click.Abort()

    console.print(f"Initializing termpanel instance at {instance_path}")
    console.print("")

    instance_path.mkdir(parents=True, exist_ok=True)
    (instance_path / "logs").mkdir(exist_ok=True)

    console.print("Generating configuration...")
    config_file = instance_path / "config.toml"
    config_file.write_text(DEFAULT_CONFIG)

    flag_data = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
    }
    with open(instance_path / INSTANCE_FLAG, "w") as f:
        json.dump(flag_data, f, indent=2)

    console.print("")
    console.print("[green]✓ termpanel instance initialized successfully![/green]")
    console.print("")
    console.print(f"Location: {instance_path}")
    console.print("")
    console.print("Next steps:")
    console.print("  1. (Optional) Edit configuration:")
    console.print(f"     {config_file}")
    console.print("")
    console.print("  2. Start the server:")
    if path:
        console.print(f"     termpanel start {path}")
    else:
        console.print("     termpanel start")
    console.print("")
    console.print("Logs: {}/logs/".format(instance_path))
