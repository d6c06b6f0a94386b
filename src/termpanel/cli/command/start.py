"""Start command implementation"""

import os

import click
from rich.console import Console

from ...exception import ConfigError
from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    load_config,
)

console = Console()


@click.command(name="start", help="Start the termpanel server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def start(path: str = None):
    """Start the termpanel server in the foreground

    Args:
        path: Instance directory path (default: ~/.termpanel)
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(f"[red]Error: Not initialized at {instance_path}[/red]")
        console.print(f"[yellow]Run: termpanel init {path if path else ''}[/yellow]")
        raise click.Abort()

    if is_running(instance_path):
        console.print("[red]Error: Instance already running[/red]")
        console.print(f"[yellow]Location: {instance_path}[/yellow]")
        raise click.Abort()

    try:
        config = load_config(instance_path)
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise click.Abort()

    try:
        host = config['server']['host']
        port = config['server']['port']
    except KeyError as e:
        console.print(f"[red]Error: Missing required config key: {e}[/red]")
        console.print("[yellow]Please add [server] section with 'host' and 'port' to config.toml[/yellow]")
        raise click.Abort()

    import uvicorn
    from ...server import create_app

    try:
        app = create_app(instance_path, config)
    except ConfigError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise click.Abort()

    console.print(f"[cyan]Starting termpanel from {instance_path}[/cyan]")
    console.print(f"[cyan]Server: http://{host}:{port}[/cyan]")
    console.print(f"[cyan]Window socket: ws://{host}:{port}/ws/window[/cyan]")
    console.print("")

    pid_file = get_pid_file(instance_path)
    pid_file.write_text(str(os.getpid()))

    try:
        uvicorn.run(app, host=host, port=port)
    finally:
        pid_file.unlink(missing_ok=True)
