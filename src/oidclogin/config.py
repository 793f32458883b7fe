"""Configuration management with XDG paths, atomic writes, and credential sources.

This module handles all persistent configuration for oidclogin:

* **Directory layout** -- ``$XDG_CONFIG_HOME`` on Linux/BSD,
  ``~/.oidclogin/`` on macOS and Windows. See :func:`get_config_dir`.
* **Client file** -- A single JSON (or YAML) file describing the registered OIDC client
  (:class:`~oidclogin.models.ClientData`). Located by
  :func:`resolve_client_path` with the precedence CLI flag >
  ``OIDCLOGIN_CONFIG`` > ``<config_dir>/client.json``.
* **Credential resolution** -- :func:`resolve_credential` reads the client
  secret from env vars, files, or an interactive prompt so that the secret
  itself need not live in the client file.

Client files are written through :func:`_atomic_write` (temp file, fsync,
rename) so a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import contextlib
import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from oidclogin.exceptions import ConfigurationError
from oidclogin.models import ClientData

_APP_NAME = "oidclogin"
_CLIENT_FILENAME = "client.json"
_CONFIG_ENV_VAR = "OIDCLOGIN_CONFIG"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/oidclogin/`` (default ``~/.config/oidclogin/``).
    On macOS/Windows: ``~/.oidclogin/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".config"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def resolve_client_path(cli_path: Optional[str] = None) -> Path:
    """Resolve which client file to use.

    Precedence (high to low):
        1. ``cli_path`` (the ``--config`` flag)
        2. ``OIDCLOGIN_CONFIG`` environment variable
        3. ``<config_dir>/client.json``
    """
    if cli_path:
        return Path(cli_path).expanduser()
    env_path = os.environ.get(_CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return get_config_dir() / _CLIENT_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: int = 0o600) -> None:
    """Replace *path* with *data* in one rename.

    The content goes to a hidden sibling file first (same directory, so the
    final ``os.replace`` stays on one filesystem); that file gets *mode*
    before anything is written and is removed again if the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            os.chmod(tmp_name, mode)
            stream.write(data)
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


# --- Client file ---


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def read_client_file(path: Path) -> dict[str, Any]:
    """Return the raw mapping stored in the client file at *path*.

    ``.yaml`` / ``.yml`` files are parsed as YAML, anything else as JSON.

    Raises:
        ConfigurationError: If the file is missing, cannot be parsed, or does
            not hold an object.
    """
    if not path.is_file():
        raise ConfigurationError(f"Client configuration not found at {path}")
    try:
        content = path.read_text(encoding="utf-8")
        data: Any = yaml.safe_load(content) if _is_yaml(path) else json.loads(content)
    except (json.JSONDecodeError, yaml.YAMLError, OSError) as exc:
        raise ConfigurationError(f"Invalid client configuration at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Client configuration at {path} must be a JSON/YAML object")
    return data


def load_client_data(path: Path) -> ClientData:
    """Load and validate the client file at *path*.

    A ``client_secret_source`` key, if present, is resolved with
    :func:`resolve_credential` and takes the place of ``client_secret``.

    Raises:
        ConfigurationError: If the file is missing or unparsable, fails
            validation, or its secret source cannot be resolved.
    """
    data = read_client_file(path)
    source = data.pop("client_secret_source", None)
    if source:
        data["client_secret"] = resolve_credential(source)

    try:
        return ClientData.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid client configuration at {path}: {exc}") from exc


def save_client_data(
    client_data: ClientData,
    path: Path,
    client_secret_source: Optional[str] = None,
) -> None:
    """Persist *client_data* atomically with ``0o600`` permissions.

    The secret value itself is never written; pass *client_secret_source*
    (``env:VAR``, ``file:/path``, ``prompt``) to record where it comes from.
    """
    data = client_data.model_dump(mode="json", exclude={"client_secret"})
    if client_secret_source:
        data["client_secret_source"] = client_secret_source
    if _is_yaml(path):
        _atomic_write(path, yaml.safe_dump(data, sort_keys=False))
    else:
        _atomic_write(path, json.dumps(data, indent=2) + "\n")


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Return the client secret named by *source*.

    ``env:NAME`` reads an environment variable, ``file:/path`` reads a file
    (surrounding whitespace stripped) and ``prompt`` asks on the terminal.

    Raises:
        ConfigurationError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Client secret: ")

    raise ConfigurationError(f"Unknown credential source format: {source}")
