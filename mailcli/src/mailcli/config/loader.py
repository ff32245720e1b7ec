"""Locate, parse and validate the mailcli configuration file.

What:
  Provide helpers to find ``config.yaml``, parse it with PyYAML, validate it
  against :class:`~mailcli.config.schema.MailConfig`, and check that the
  settings needed by an IMAP or SMTP session are present.

Why:
  The core services accept resolved connection settings and never read files
  or the environment themselves. Centralising discovery keeps precedence rules
  and error messages identical for every command.

How:
  Resolve candidate paths from an explicit argument, the ``MAILCLI_CONFIG_PATH``
  environment variable and the per-user default. Parse the first existing file,
  apply the ``MAILCLI_AUTH_PASSWORD`` override, validate with Pydantic and cache
  the result per process.

Interfaces:
  - :func:`load_config` / :func:`get_config` / :func:`reset_config`.
  - :func:`validate_imap` / :func:`validate_smtp`.
  - :func:`redact`.

Invariants:
  - All payloads pass strict Pydantic validation before being returned.
  - Passwords never leave :func:`redact` unmasked.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import MailConfig


class ConfigLoadError(Exception):
    """Raised when ``config.yaml`` cannot be located, read or parsed.

    What:
      Represent fatal issues encountered while reading the configuration file.

    Why:
      Lets the CLI report configuration mistakes separately from IMAP or SMTP
      connectivity problems.
    """


class ConfigError(ConfigLoadError):
    """Raised when a loaded configuration lacks settings a session requires."""


CONFIG_ENV = "MAILCLI_CONFIG_PATH"
PASSWORD_ENV = "MAILCLI_AUTH_PASSWORD"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (Path("~/.config/mailcli/config.yaml"),)
_CONFIG_CACHE: Optional[Tuple[Path, MailConfig]] = None

REDACTED_PASSWORD = "****"


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations in priority order.

    Args:
      path: Explicit path requested by the caller, or ``None`` to rely on the
        environment and defaults.

    Yields:
      Candidate paths ordered from most specific to least specific.
    """

    seen: set[Path] = set()
    if path is not None:
        candidate = path.expanduser()
        seen.add(candidate)
        yield candidate
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate
    for default in _DEFAULT_LOCATIONS:
        candidate = default.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse_config_payload(text: str, source: Path) -> Dict[str, Any]:
    """Parse ``config.yaml`` text into a mapping ready for validation.

    Raises:
      ConfigLoadError: If the YAML is malformed or not a mapping.
    """

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError("config.yaml must contain a mapping at the top-level")
    return payload


def _apply_environment(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay secrets supplied through the environment onto ``payload``."""

    password = os.environ.get(PASSWORD_ENV)
    if password:
        auth = dict(payload.get("auth") or {})
        auth["password"] = password
        payload = {**payload, "auth": auth}
    return payload


def _load_from_path(path: Path) -> MailConfig:
    """Read, parse and validate the configuration stored at ``path``.

    Raises:
      ConfigLoadError: If the file cannot be read or fails validation.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise ConfigLoadError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _apply_environment(_parse_config_payload(text, path))
    try:
        return MailConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise ConfigLoadError(f"Invalid config.yaml: {exc}") from exc


def load_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> MailConfig:
    """Resolve, parse and cache the configuration.

    What:
      Locate ``config.yaml`` using the precedence chain, parse it, and return a
      validated :class:`MailConfig`.

    Why:
      A single CLI invocation may open several sessions; caching avoids
      re-reading the file while ``reload`` gives tests a deterministic refresh.

    How:
      Consult the module cache unless ``reload`` is set or a different path is
      requested, then walk :func:`_candidate_paths` until a file exists.

    Args:
      path: Optional explicit location of ``config.yaml``.
      reload: When ``True`` bypass the cache.

    Returns:
      The validated configuration.

    Raises:
      ConfigLoadError: If no candidate file exists or the file is invalid.
    """

    global _CONFIG_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _CONFIG_CACHE is not None:
        cached_path, cached_config = _CONFIG_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    searched: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        config = _load_from_path(candidate)
        _CONFIG_CACHE = (candidate, config)
        return config

    listing = ", ".join(searched) if searched else "<none>"
    raise ConfigLoadError(f"Unable to locate config.yaml (searched: {listing})")


def get_config() -> MailConfig:
    """Return the cached configuration, loading it on demand."""

    return load_config()


def reset_config() -> None:
    """Clear the configuration cache."""

    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def _require_credentials(config: MailConfig) -> None:
    if not config.auth.username:
        raise ConfigError("auth.username is required")
    if not config.auth.password:
        raise ConfigError("auth.password is required")


def validate_imap(config: MailConfig) -> None:
    """Ensure ``config`` carries everything an IMAP session needs.

    Raises:
      ConfigError: ``imap.host is required``, ``auth.username is required`` or
      ``auth.password is required``.
    """

    if not config.imap.host:
        raise ConfigError("imap.host is required")
    _require_credentials(config)


def validate_smtp(config: MailConfig) -> None:
    """Ensure ``config`` carries everything an SMTP session needs."""

    if not config.smtp.host:
        raise ConfigError("smtp.host is required")
    _require_credentials(config)


def redact(config: MailConfig) -> Dict[str, Any]:
    """Return a plain mapping of ``config`` with the password masked."""

    payload = config.model_dump(mode="json")
    if payload["auth"].get("password"):
        payload["auth"]["password"] = REDACTED_PASSWORD
    return payload


def dump_config(config: MailConfig) -> str:
    """Serialise the redacted configuration as YAML text."""

    return yaml.safe_dump(redact(config), sort_keys=False)
