"""RU: Конфигурация из YAML (безопасная загрузка) в неизменяемые dataclass'ы.

Ключи API можно указывать прямо (``secret``), через имя переменной окружения
(``secret_env``) или не указывать вовсе: тогда используются
ASSEMBLYAI_API_KEY / DEEPGRAM_API_KEY / OPENAI_API_KEY.

EN: YAML configuration (safe load) mapped onto frozen dataclasses.

API keys may be given inline (``secret``), by environment variable name
(``secret_env``) or omitted, in which case ASSEMBLYAI_API_KEY /
DEEPGRAM_API_KEY / OPENAI_API_KEY are used.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Final, Mapping

import yaml

from call_qc.credentials.pool import CredentialPool
from call_qc.evaluation.escalator import DEFAULT_CONFIDENCE_THRESHOLD, DEFAULT_MAX_TOKENS
from call_qc.transcription.assemblyai import AssemblyAIConfig, AssemblyAITransport
from call_qc.transcription.deepgram import DeepgramConfig, DeepgramTransport
from call_qc.transcription.orchestrator import DEFAULT_MAX_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL_S
from call_qc.transcription.regions import REGIONS, detect_region
from call_qc.transcription.transport import TranscriptionTransport

LOGGER = logging.getLogger("call_qc")

PROVIDERS: Final = ("assemblyai", "deepgram")
PROVIDER_KEY_ENV: Final = {
    "assemblyai": "ASSEMBLYAI_API_KEY",
    "deepgram": "DEEPGRAM_API_KEY",
}
OPENAI_KEY_ENV: Final = "OPENAI_API_KEY"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class CredentialEntry:
    secret: str
    region: str
    name: str = ""


@dataclass(frozen=True)
class TranscriptionSettings:
    provider: str = "assemblyai"
    region: str = "auto"
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    timeout_s: int = 300
    deepgram_model: str = "nova-2"
    options: Mapping[str, Any] = field(default_factory=dict)

    def resolved_region(self) -> str:
        """RU: ``auto`` определяется по часовому поясу (переменная TZ).

        EN: ``auto`` is resolved from the timezone (TZ variable).
        """
        if self.region == "auto":
            return detect_region(os.environ.get("TZ"))
        return self.region


@dataclass(frozen=True)
class EvaluationSettings:
    primary_model: str = "gpt-5-mini-2025-08-07"
    escalated_model: str = "gpt-5-2025-08-07"
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout_s: int = 300
    api_key: str | None = None


@dataclass(frozen=True)
class AppConfig:
    transcription: TranscriptionSettings = field(default_factory=TranscriptionSettings)
    evaluation: EvaluationSettings = field(default_factory=EvaluationSettings)
    credentials: tuple[CredentialEntry, ...] = ()


def _section(conf: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = conf.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        message = f"Config section '{name}' must be a mapping"
        raise ConfigError(message)
    return value


def _resolve_secret(raw: Mapping[str, Any]) -> str:
    secret = raw.get("secret")
    if secret:
        return str(secret)
    env_name = raw.get("secret_env")
    if env_name:
        return os.environ.get(str(env_name), "")
    return ""


def _parse_credentials(raw: Any, default_region: str) -> tuple[CredentialEntry, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("Config section 'credentials' must be a list")
    entries: list[CredentialEntry] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, Mapping):
            message = f"Credential #{idx} must be a mapping"
            raise ConfigError(message)
        region = str(item.get("region") or default_region)
        if region not in REGIONS:
            message = f"Credential #{idx}: unknown region '{region}'"
            raise ConfigError(message)
        secret = _resolve_secret(item)
        if not secret:
            LOGGER.warning("Credential #%d (%s) has no secret; skipping", idx, item.get("name", ""))
            continue
        entries.append(CredentialEntry(secret=secret, region=region, name=str(item.get("name") or "")))
    return tuple(entries)


def parse_config(conf: Mapping[str, Any] | None) -> AppConfig:
    conf = conf or {}
    if not isinstance(conf, Mapping):
        raise ConfigError("Config root must be a mapping")

    tr = _section(conf, "transcription")
    provider = str(tr.get("provider", "assemblyai"))
    if provider not in PROVIDERS:
        message = f"Unsupported provider: {provider}"
        raise ConfigError(message)
    region = str(tr.get("region", "auto"))
    if region != "auto" and region not in REGIONS:
        message = f"Unknown region: {region}"
        raise ConfigError(message)
    options = tr.get("options") or {}
    if not isinstance(options, Mapping):
        raise ConfigError("transcription.options must be a mapping")

    transcription = TranscriptionSettings(
        provider=provider,
        region=region,
        poll_interval_s=float(tr.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S)),
        max_poll_attempts=int(tr.get("max_poll_attempts", DEFAULT_MAX_POLL_ATTEMPTS)),
        timeout_s=int(tr.get("timeout_s", 300)),
        deepgram_model=str(tr.get("deepgram_model", "nova-2")),
        options=dict(options),
    )

    ev = _section(conf, "evaluation")
    defaults = EvaluationSettings()
    evaluation = EvaluationSettings(
        primary_model=str(ev.get("primary_model", defaults.primary_model)),
        escalated_model=str(ev.get("escalated_model", defaults.escalated_model)),
        confidence_threshold=float(ev.get("confidence_threshold", defaults.confidence_threshold)),
        max_tokens=int(ev.get("max_tokens", defaults.max_tokens)),
        timeout_s=int(ev.get("timeout_s", defaults.timeout_s)),
        api_key=_resolve_secret(ev) or None,
    )

    return AppConfig(
        transcription=transcription,
        evaluation=evaluation,
        credentials=_parse_credentials(conf.get("credentials"), transcription.resolved_region()),
    )


def load_config(path: Path | str | None) -> AppConfig:
    """RU: Читает YAML-файл; отсутствие пути даёт конфиг по умолчанию.

    EN: Read a YAML file; no path yields the default config.
    """
    if path is None:
        return AppConfig()
    config_path = Path(path)
    if not config_path.exists():
        message = f"Config file not found: {config_path}"
        raise ConfigError(message)
    with config_path.open(encoding="utf-8") as f:
        try:
            conf = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            message = f"Invalid YAML in {config_path}: {exc}"
            raise ConfigError(message) from exc
    return parse_config(conf)


def build_pool(cfg: AppConfig) -> CredentialPool:
    """Register configured credentials; fall back to the provider's env key."""
    pool = CredentialPool()
    for entry in cfg.credentials:
        pool.register(entry.secret, entry.region, name=entry.name)
    if not len(pool):
        env_name = PROVIDER_KEY_ENV[cfg.transcription.provider]
        secret = os.environ.get(env_name, "")
        if secret:
            pool.register(secret, cfg.transcription.resolved_region(), name=env_name)
    return pool


def build_transport(settings: TranscriptionSettings) -> TranscriptionTransport:
    if settings.provider == "deepgram":
        return DeepgramTransport(DeepgramConfig(model=settings.deepgram_model, timeout_s=settings.timeout_s))
    return AssemblyAITransport(AssemblyAIConfig(timeout_s=settings.timeout_s))


def openai_api_key(settings: EvaluationSettings) -> str | None:
    return settings.api_key or os.environ.get(OPENAI_KEY_ENV) or None
