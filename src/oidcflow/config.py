"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for oidcflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.oidcflow/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Provider config** -- A single :class:`~oidcflow.models.OidcConfig`
  JSON file, edited one key at a time with :func:`update_config_value`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  ``OIDCFLOW_*`` environment variables, and the config file into the final
  effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from oidcflow.exceptions import ConfigError
from oidcflow.models import OidcConfig

_APP_NAME = "oidcflow"
_CONFIG_FILENAME = "config.json"

ENV_PREFIX = "OIDCFLOW_"

_ENV_FIELDS = (
    "issuer",
    "client_id",
    "redirect_uri",
    "scopes",
    "logout_redirect_uri",
    "timeout",
)


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that use XDG base directories (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/oidcflow/`` (default ``~/.config/oidcflow/``).
    On macOS/Windows: ``~/.oidcflow/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session snapshot, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/oidcflow/`` (default ``~/.local/share/oidcflow/``).
    On macOS/Windows: ``~/.oidcflow/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. A reader therefore
    sees either the previous content or the new content, never a mix.

    Args:
        path: Destination file.
        data: Text to write.
        mode: Permission bits applied to the temp file before any content
            is written (e.g. ``0o600`` for secrets).

    Raises:
        OSError: If the file cannot be written. The temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config file ---


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (ValueError, OSError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: expected a JSON object")
    return data


def update_config_value(key: str, value: str, path: Optional[Path] = None) -> Path:
    """Set a single key in the config file, validating only the known fields.

    A partially configured file (e.g. only ``issuer`` so far) is allowed so
    that settings can be entered one at a time.

    Raises:
        ConfigError: If *key* is unknown or *value* is invalid for it.
    """
    if key not in OidcConfig.model_fields:
        known = ", ".join(sorted(OidcConfig.model_fields))
        raise ConfigError(f"Unknown config key '{key}'. Known keys: {known}")

    path = path or default_config_path()
    data = _read_config_file(path)
    data[key] = _coerce(key, value)

    # Validate the single field against the model's rules.
    probe = {"issuer": "https://probe", "client_id": "probe", key: data[key]}
    try:
        OidcConfig.model_validate(probe)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {exc}") from exc

    atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


def _coerce(key: str, value: str) -> Any:
    """Convert a raw string (env var or CLI argument) to the field's shape."""
    if key == "scopes":
        return [s for s in value.replace(",", " ").split() if s]
    if key == "timeout":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"'timeout' must be a number, got '{value}'") from exc
    return value


# --- Precedence resolution ---


def resolve_config(
    config_path: Optional[Path] = None,
    **cli_overrides: Any,
) -> OidcConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (keyword arguments whose value is not ``None``)
        2. Environment variables (``OIDCFLOW_ISSUER``, ``OIDCFLOW_CLIENT_ID``, ...)
        3. Config file (``~/.config/oidcflow/config.json``)
        4. Model defaults

    Raises:
        ConfigError: If the merged values are incomplete or invalid.
    """
    merged: dict[str, Any] = _read_config_file(config_path or default_config_path())

    for field in _ENV_FIELDS:
        env_value = os.environ.get(f"{ENV_PREFIX}{field.upper()}")
        if env_value:
            merged[field] = _coerce(field, env_value)

    for field, value in cli_overrides.items():
        if value is not None:
            merged[field] = value

    missing = [f for f in ("issuer", "client_id") if not merged.get(f)]
    if missing:
        names = ", ".join(missing)
        raise ConfigError(
            f"Missing required configuration: {names}. "
            f"Set it with 'oidcflow config set' or {ENV_PREFIX}<NAME> variables."
        )

    try:
        return OidcConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
