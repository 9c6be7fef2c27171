"""XDG-compliant path management for portalctl.

This module provides standardized paths following the XDG Base Directory
Specification for configuration, state, library data and scratch space.

XDG defaults:
- Config: ~/.config/portalctl/
- State: ~/.local/state/portalctl/
- Data: ~/.local/share/portalctl/
- Cache: ~/.cache/portalctl/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "portalctl"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/portalctl/ (or XDG_CONFIG_HOME/portalctl/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes the source, app and certificate record files and
    persisted flags that must survive between runs.

    Returns:
        Path to ~/.local/state/portalctl/ (or XDG_STATE_HOME/portalctl/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_data_dir() -> Path:
    """Get the data directory path.

    Returns:
        Path to ~/.local/share/portalctl/ (or XDG_DATA_HOME/portalctl/).
    """
    return _get_xdg_dir("XDG_DATA_HOME", ".local/share")


def get_cache_dir() -> Path:
    """Get the cache directory path.

    Returns:
        Path to ~/.cache/portalctl/ (or XDG_CACHE_HOME/portalctl/).
    """
    return _get_xdg_dir("XDG_CACHE_HOME", ".cache")


def get_settings_path() -> Path:
    """Get the settings file path.

    Returns:
        Path to ~/.config/portalctl/settings.toml.
    """
    return get_config_dir() / "settings.toml"


def get_credentials_path() -> Path:
    """Get the credential store file path.

    Returns:
        Path to ~/.config/portalctl/credentials.toml.
    """
    return get_config_dir() / "credentials.toml"


def get_library_dir() -> Path:
    """Get the library root holding imported apps and certificates.

    Returns:
        Path to ~/.local/share/portalctl/library/.
    """
    return get_data_dir() / "library"


def get_unsigned_dir() -> Path:
    """Get the canonical location of imported (unsigned) apps."""
    return get_library_dir() / "unsigned"


def get_certificates_dir() -> Path:
    """Get the canonical location of imported certificate files."""
    return get_library_dir() / "certificates"


def get_work_dir() -> Path:
    """Get the scratch root under which pipelines create working directories.

    Everything below this directory is disposable.
    Returns:
        Path to ~/.cache/portalctl/work/.
    """
    return get_cache_dir() / "work"


def _ensure_dir(path: Path, name: str) -> Path:
    """Create directory if it doesn't exist.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path


def ensure_work_dir() -> Path:
    """Create the scratch root if it doesn't exist.

    Raises:
        RuntimeError: If the directory cannot be created.
    """
    return _ensure_dir(get_work_dir(), "work")
