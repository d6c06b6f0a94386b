"""CLI utility functions"""

import json
from pathlib import Path
from typing import Optional


INSTANCE_FLAG = ".termpanel_instance"


def get_instance_path(path: Optional[str] = None) -> Path:
    """Get instance path, default to ~/.termpanel

    Args:
        path: Custom path (relative or absolute), None for default

    Returns:
        Resolved absolute path
    """
    if path is None:
        return Path.home() / ".termpanel"
    return Path(path).resolve()


def is_initialized(instance_path: Path) -> bool:
    return (instance_path / INSTANCE_FLAG).exists()


def get_instance_info(instance_path: Path) -> dict:
    """Get instance metadata

    Raises:
        FileNotFoundError: If not initialized
    """
    flag_file = instance_path / INSTANCE_FLAG
    if not flag_file.exists():
        raise FileNotFoundError(f"Instance not initialized at {instance_path}")

    with open(flag_file, "r") as f:
        return json.load(f)


def load_config(instance_path: Path) -> dict:
    """Load config.toml

    Args:
        instance_path: Instance directory path

    Returns:
        Configuration dict
    """
    import tomli

    config_file = instance_path / "config.toml"
    with open(config_file, "rb") as f:
        return tomli.load(f)


def get_pid_file(instance_path: Path) -> Path:
    return instance_path / ".termpanel.pid"


def read_pid(instance_path: Path) -> Optional[int]:
    """Read the server PID, None when there is no usable PID file"""
    pid_file = get_pid_file(instance_path)
    if not pid_file.exists():
        return None
    try:
        return int(pid_file.read_text().strip())
    except ValueError:
        return None


def is_running(instance_path: Path) -> bool:
    """Check if instance is running by checking PID file existence"""
    return get_pid_file(instance_path).exists()
