"""Persisted settings for the makeshift agent.

``settings.json`` keeps plain options at the top level and every credential
under ``secrets`` as a Fernet token::

    {"version": 2, "base_url": "...", "secrets": {"api_key": "gAAAAB..."}}

Version 1 files stored credentials in plaintext; they are rewritten in the
current layout the first time they load. When a value is set in more than one
place the environment wins over CLI overrides, which win over the file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.client import DEFAULT_BASE_URL, DEFAULT_MODELS, ClientSettings, ModelConfiguration
from ..ai.tools.gifs import TENOR_PUBLIC_KEY
from ..ai.tools.web import DEFAULT_SEARCH_URL

__all__ = [
    "SECRET_FIELDS",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "active_environment_overrides",
    "environment_overrides",
    "parse_flag",
    "parse_model_names",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

SECRET_FIELDS: tuple[str, ...] = ("api_key", "tenor_api_key")

_DEFAULT_SETTINGS_PATH = Path.home() / ".makeshift" / "settings.json"
_SETTINGS_VERSION = 2
_FLAG_VALUES = {
    "1": True, "true": True, "yes": True, "on": True,
    "0": False, "false": False, "no": False, "off": False, "": False,
}


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class Settings:
    """Everything the agent reads at start-up."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    models: list[ModelConfiguration] = field(default_factory=lambda: list(DEFAULT_MODELS))
    request_timeout: float = 10.0
    switch_on_timeout: bool = False
    max_tool_iterations: int = 8
    history_limit: int = 16
    max_reply_chain: int = 8
    channel: str | None = None
    prompt_dir: str | None = None
    native_tool_calls: bool = False
    legacy_json_fallback: bool = False
    search_url: str = DEFAULT_SEARCH_URL
    tenor_api_key: str = TENOR_PUBLIC_KEY
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False

    def client_settings(self) -> ClientSettings:
        """Project the fields the completion client needs."""
        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            models=tuple(self.models),
            request_timeout=self.request_timeout,
            switch_on_timeout=self.switch_on_timeout,
            default_headers=dict(self.default_headers) or None,
            debug_logging=self.debug_logging,
        )

    def secrets(self) -> tuple[str, ...]:
        return tuple(getattr(self, name) for name in SECRET_FIELDS)

    def redacted(self) -> Dict[str, Any]:
        """Return a JSON-ready copy with every credential masked."""
        data = asdict(self)
        for name in SECRET_FIELDS:
            data[name] = redact_secret(data[name])
        return data


_FIELD_NAMES = frozenset(item.name for item in fields(Settings))


def _is_count(value: Any, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


# Fields whose values must stay in range; anything else falls back to the default.
_RANGE_CHECKS: Mapping[str, Callable[[Any], bool]] = {
    "request_timeout": lambda value: isinstance(value, (int, float))
    and not isinstance(value, bool)
    and value > 0,
    "max_tool_iterations": lambda value: _is_count(value, 0),
    "history_limit": lambda value: _is_count(value, 1),
    "max_reply_chain": lambda value: _is_count(value, 0),
}


def _within_ranges(settings: Settings) -> Settings:
    defaults = Settings()
    fixes: Dict[str, Any] = {}
    for name, check in _RANGE_CHECKS.items():
        value = getattr(settings, name)
        if not check(value):
            fallback = getattr(defaults, name)
            LOGGER.warning("Setting %s=%r is out of range; using %r", name, value, fallback)
            fixes[name] = fallback
    return replace(settings, **fixes) if fixes else settings


# -----------------------------------------------------------------------------
# Secrets
# -----------------------------------------------------------------------------


class SecretVault:
    """Fernet encryption keyed by a file that is created on first use."""

    def __init__(self, *, key_path: Path) -> None:
        self._key_path = key_path
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Return the plaintext for ``token``.

        Raises:
            ValueError: The token is corrupt or was written with another key.
        """
        if not token:
            return ""
        try:
            return self._cipher().decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise ValueError(f"token does not match the key at {self._key_path}") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        key = Fernet.generate_key()
        _write_atomically(self._key_path, key)
        LOGGER.info("Created settings key at %s", self._key_path)
        return key


# -----------------------------------------------------------------------------
# Environment
# -----------------------------------------------------------------------------


def parse_flag(raw: str) -> bool:
    """Parse ``yes``/``no`` style switches; anything unrecognised is an error."""
    try:
        return _FLAG_VALUES[raw.strip().lower()]
    except KeyError:
        raise ValueError(f"{raw!r} is not a recognised on/off value") from None


def parse_model_names(raw: str) -> list[ModelConfiguration]:
    names = [name.strip() for name in raw.split(",") if name.strip()]
    if not names:
        raise ValueError("expected a comma-separated list of model names")
    return [ModelConfiguration(model=name) for name in names]


_ENV_FIELDS: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "MAKESHIFT_API_KEY": ("api_key", str.strip),
    "MAKESHIFT_BASE_URL": ("base_url", str.strip),
    "MAKESHIFT_MODELS": ("models", parse_model_names),
    "MAKESHIFT_CHANNEL": ("channel", str.strip),
    "MAKESHIFT_PROMPT_DIR": ("prompt_dir", str.strip),
    "MAKESHIFT_SEARCH_URL": ("search_url", str.strip),
    "MAKESHIFT_TENOR_API_KEY": ("tenor_api_key", str.strip),
    "MAKESHIFT_REQUEST_TIMEOUT": ("request_timeout", float),
    "MAKESHIFT_MAX_TOOL_ITERATIONS": ("max_tool_iterations", int),
    "MAKESHIFT_HISTORY_LIMIT": ("history_limit", int),
    "MAKESHIFT_MAX_REPLY_CHAIN": ("max_reply_chain", int),
    "MAKESHIFT_SWITCH_ON_TIMEOUT": ("switch_on_timeout", parse_flag),
    "MAKESHIFT_NATIVE_TOOL_CALLS": ("native_tool_calls", parse_flag),
    "MAKESHIFT_LEGACY_JSON_FALLBACK": ("legacy_json_fallback", parse_flag),
    "MAKESHIFT_DEBUG_LOGGING": ("debug_logging", parse_flag),
}


def environment_overrides(environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
    """Parse every recognised ``MAKESHIFT_*`` variable; bad values are logged and skipped."""
    source = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_FIELDS.items():
        raw = source.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = parse(raw)
        except ValueError as exc:
            LOGGER.warning("Ignoring %s=%r: %s", env_name, raw, exc)
    return overrides


def active_environment_overrides(environ: Mapping[str, str] | None = None) -> list[str]:
    source = os.environ if environ is None else environ
    return sorted(name for name in _ENV_FIELDS if name in source)


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON next to its Fernet key."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load the file, then layer ``overrides`` and the environment on top."""

        payload = self._read_payload()
        settings, outdated = self._decode(payload)
        if outdated:
            LOGGER.info("Rewriting %s in the version %d layout", self._path, _SETTINGS_VERSION)
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Could not rewrite settings file: %s", exc)

        if overrides:
            settings = _merge(settings, overrides, source="CLI")
        env = environment_overrides()
        if env:
            settings = _merge(settings, env, source="environment")
        return _within_ranges(settings)

    def save(self, settings: Settings) -> Path:
        payload = asdict(settings)
        secrets = {name: self._vault.encrypt(payload.pop(name)) for name in SECRET_FIELDS}
        payload["secrets"] = {name: token for name, token in secrets.items() if token}
        payload["version"] = _SETTINGS_VERSION
        _write_atomically(self._path, json.dumps(payload, indent=2, sort_keys=True).encode("utf-8"))
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return payload

    def _decode(self, payload: Mapping[str, Any]) -> tuple[Settings, bool]:
        """Build settings from a file payload; the flag asks for a rewrite."""
        if not payload:
            return Settings(), False
        outdated = payload.get("version") != _SETTINGS_VERSION
        values = {
            name: value
            for name, value in payload.items()
            if name in _FIELD_NAMES and name not in SECRET_FIELDS
        }
        tokens = payload.get("secrets")
        if not isinstance(tokens, Mapping):
            tokens = {}
        for name in SECRET_FIELDS:
            if isinstance(tokens.get(name), str):
                try:
                    values[name] = self._vault.decrypt(tokens[name])
                except ValueError as exc:
                    LOGGER.warning("Dropping stored %s: %s", name, exc)
            elif isinstance(payload.get(name), str):
                values[name] = payload[name]
                outdated = True
        return _merge(Settings(), values, source=str(self._path)), outdated


def _merge(settings: Settings, values: Mapping[str, Any], *, source: str) -> Settings:
    """Apply known, non-``None`` entries of ``values`` onto ``settings``."""
    updates = {name: value for name, value in values.items() if name in _FIELD_NAMES and value is not None}
    unknown = sorted(set(values) - _FIELD_NAMES)
    if unknown:
        LOGGER.debug("Ignoring unknown settings from %s: %s", source, unknown)
    if "models" in updates:
        updates["models"] = _coerce_models(updates["models"])
    if not updates:
        return settings
    LOGGER.debug("Applying settings from %s: %s", source, sorted(updates))
    return replace(settings, **updates)


def _coerce_models(payload: Any) -> list[ModelConfiguration]:
    models: list[ModelConfiguration] = []
    for entry in payload or ():
        if isinstance(entry, ModelConfiguration):
            models.append(entry)
            continue
        if not isinstance(entry, Mapping):
            LOGGER.warning("Ignoring model entry of type %s", type(entry).__name__)
            continue
        try:
            models.append(ModelConfiguration.from_dict(entry))
        except ValueError as exc:
            LOGGER.warning("Ignoring model entry %s: %s", entry, exc)
    if not models:
        LOGGER.warning("No usable model configurations; using defaults")
        return list(DEFAULT_MODELS)
    return models


def _write_atomically(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_bytes(data)
    if os.name != "nt":  # pragma: no cover - depends on OS
        os.chmod(tmp_path, 0o600)
    tmp_path.replace(path)


def redact_secret(value: str | None) -> str:
    """Keep the last four characters of long secrets; mask short ones entirely."""
    stripped = (value or "").strip()
    if len(stripped) <= 8:
        return "*" * len(stripped)
    return f"{'*' * 8}{stripped[-4:]}"
