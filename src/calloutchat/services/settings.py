"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "AVAILABLE_MODELS",
    "PROVIDER_CHOICES",
    "Settings",
    "SettingsStore",
    "SecretVault",
    "clamp_temperature",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".calloutchat"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "CALLOUTCHAT_API_KEY": "api_key",
    "CALLOUTCHAT_BASE_URL": "base_url",
    "CALLOUTCHAT_MODEL": "model",
    "CALLOUTCHAT_PROVIDER": "provider",
    "CALLOUTCHAT_CALLOUT_TYPE": "callout_type",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CALLOUTCHAT_DEBUG_LOGGING": "debug_logging",
    "CALLOUTCHAT_WEB_SEARCH": "web_search",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "CALLOUTCHAT_REQUEST_TIMEOUT": "request_timeout",
    "CALLOUTCHAT_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "CALLOUTCHAT_MAX_TOKENS": "max_tokens",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_API_KEY_FIELD = "api_key_ciphertext"
PROVIDER_CHOICES: tuple[str, ...] = ("1minai", "openai")
AVAILABLE_MODELS: tuple[str, ...] = (
    "gpt-4o-mini",
    "gpt-4o",
    "claude-3-5-sonnet",
    "gemini-1.5-flash",
)


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    provider: str = "1minai"
    base_url: str | None = None
    max_tokens: int = 500
    web_search: bool = False
    callout_type: str = "ai"
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    notice_duration_ms: int = 5_000
    debug_logging: bool = False

    def __post_init__(self) -> None:
        self.temperature = clamp_temperature(self.temperature)

    @property
    def has_api_key(self) -> bool:
        return bool((self.api_key or "").strip())


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        key_path = self._path.with_suffix(".key")
        self._vault = vault or SecretVault(key_path=key_path)

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    @property
    def vault(self) -> SecretVault:
        """Return the secret vault managing API key encryption."""

        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            plaintext_key, migrated = self._decrypt_api_key(
                payload.pop(_API_KEY_FIELD, None), payload.pop("api_key", None)
            )
            needs_migration = migrated
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if plaintext_key:
                settings = replace(settings, api_key=plaintext_key)

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - depends on filesystem
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s (provider=%s, model=%s)", self._path, settings.provider, settings.model)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        api_key = data.pop("api_key", "") or ""
        if api_key:
            data[_API_KEY_FIELD] = self._vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _decrypt_api_key(
        self, ciphertext: str | None, legacy_plaintext: str | None
    ) -> tuple[str, bool]:
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return "", False
        if legacy_plaintext:
            LOGGER.info("Detected legacy plaintext API key; migrating to encrypted storage.")
            return legacy_plaintext, True
        return "", False


class SecretVault:
    """Encrypts and decrypts the API key with a Fernet key stored on disk."""

    strategy = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return f"{self.strategy}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, payload = _split_token(token)
        if prefix not in (None, self.strategy):
            raise ValueError(f"Unknown secret token prefix {prefix}")
        try:
            raw = self._get_fernet().decrypt(payload.encode("ascii"))
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc
        return raw.decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


def clamp_temperature(value: Any) -> float:
    """Coerce ``value`` into the ``[0.0, 1.0]`` sampling range."""

    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Temperature must be a number, got {value!r}") from exc
    return max(0.0, min(1.0, number))


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


def _split_token(token: str) -> tuple[str | None, str]:
    if ":" not in token:
        return None, token
    prefix, payload = token.split(":", 1)
    return (prefix or None), payload
