"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    get_pid_file,
    read_pid,
)

console = Console()


@click.command(name="stop", help="Stop the termpanel server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
@click.option(
    "--timeout",
    type=int,
    default=10,
    show_default=True,
    help="Seconds to wait for graceful shutdown",
)
def stop(path: str = None, force: bool = False, timeout: int = 10):
    """Stop the termpanel server

    Sends SIGTERM, waits for the process to exit, then sends SIGKILL
    when --force is given.

    Args:
        path: Instance directory path (default: ~/.termpanel)
        force: Force kill if graceful shutdown fails
        timeout: Seconds to wait after SIGTERM
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(f"[red]Error: Not initialized at {instance_path}[/red]")
        raise click.Abort()

    pid = read_pid(instance_path)
    if pid is None:
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    console.print(f"Stopping termpanel (PID: {pid})...")
    pid_file = get_pid_file(instance_path)

    try:
        os.kill(pid, signal.SIGTERM)

        for _ in range(timeout):
            time.sleep(1)
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                break
        else:
            if not force:
                console.print(f"[red]Process still running after {timeout}s[/red]")
                console.print("[yellow]Use --force to force kill[/yellow]")
                raise click.Abort()
            console.print("[yellow]Graceful shutdown failed, force killing...[/yellow]")
            os.kill(pid, signal.SIGKILL)

    except ProcessLookupError:
        console.print("[yellow]Process already stopped[/yellow]")
    except PermissionError:
        console.print(f"[red]Error: Permission denied to stop process {pid}[/red]")
        raise click.Abort()

    pid_file.unlink(missing_ok=True)
    console.print("[green]✓ Server stopped[/green]")
