"""Configuration models for the [panel] and [host] tables of config.toml"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .exception import ConfigError


class PanelConfig(BaseModel):
    """Per-window panel settings

    Loaded from the [panel] table. Every field has a default so an
    empty table (or a missing one) yields a working panel.
    """

    context: Optional[str] = Field(
        default=None,
        description="Context prefix used to select sessions on restore"
    )
    show_all_terminals: bool = Field(
        default=False,
        description="Restore every existing session regardless of context"
    )
    default_directory: Optional[str] = Field(
        default=None,
        description="Working directory for fresh tabs (process cwd when unset)"
    )
    new_tab_lock_window: float = Field(
        default=0.5,
        ge=0,
        description="Seconds during which repeated new-tab triggers are discarded"
    )
    refresh_delay: float = Field(
        default=0.3,
        ge=0,
        description="Grace delay in seconds before a buffer replay is requested"
    )
    keep_last_tab: bool = Field(
        default=True,
        description="Refuse to close the only remaining tab"
    )


class HostConfig(BaseModel):
    """Settings for the bundled local session directory (the [host] table)"""

    shell: str = Field(default="bash", description="Shell executable for new sessions")
    shell_args: list[str] = Field(default_factory=lambda: ["--norc", "--noprofile"])
    scrollback_bytes: int = Field(
        default=64 * 1024,
        gt=0,
        description="Size of the per-session replay buffer in characters"
    )


def load_panel_config(config: dict) -> PanelConfig:
    """Build PanelConfig from the loaded config.toml dict

    Args:
        config: Configuration dict (may lack a [panel] table)

    Returns:
        Validated PanelConfig

    Raises:
        ConfigError: If the [panel] table holds invalid values
    """
    try:
        return PanelConfig.model_validate(config.get('panel', {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid [panel] configuration: {e}") from e


def load_host_config(config: dict) -> HostConfig:
    """Build HostConfig from the loaded config.toml dict

    Raises:
        ConfigError: If the [host] table holds invalid values
    """
    try:
        return HostConfig.model_validate(config.get('host', {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid [host] configuration: {e}") from e
