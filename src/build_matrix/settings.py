"""build-matrix settings (Pydantic v2)."""

from __future__ import annotations

import json
import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal
from urllib.parse import urlparse
from uuid import UUID

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import DotEnvSettingsSource, EnvSettingsSource

from .matrix import BuildPair, CompilerVersion, Platform, full_matrix, latest_compiler_version

# ---- Defaults ---------------------------------------------------------------

DEFAULT_STORAGE_ROOT = Path("./data")
DEFAULT_SQLITE_PATH = DEFAULT_STORAGE_ROOT / "db" / "build-matrix.sqlite"
DEFAULT_COMPILER_VERSIONS = ["5.9", "5.10", "6.0", "6.1"]
DEFAULT_TRIM_GRACE_PERIOD = timedelta(hours=4)
DEFAULT_GITLAB_API_URL = "https://gitlab.com/api/v4"

_LENIENT_LIST_FIELDS = {"allow_list", "active_platforms", "active_compiler_versions"}

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


# ---- Helpers ----------------------------------------------------------------

def _env_file() -> str:
    override = os.getenv("BM_ENV_FILE")
    if override and override.strip():
        return str(Path(override).expanduser().resolve())
    return ".env"


def _parse_duration(value: Any, *, field_name: str) -> timedelta:
    """Accept seconds (int/float/str) or '60s'/'5m'/'1h'/'14d'."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError(f"{field_name} must not be blank")
        try:
            seconds = float(s)
        except ValueError:
            unit = s[-1].lower()
            num = s[:-1].strip()
            if unit not in _UNIT_SECONDS or not num:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from None
            try:
                seconds = float(num) * _UNIT_SECONDS[unit]
            except ValueError as exc:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from exc
    else:
        raise TypeError(f"{field_name} must be number, duration string, or timedelta")
    if seconds <= 0:
        raise ValueError(f"{field_name} must be > 0 seconds")
    return timedelta(seconds=seconds)


def _list_from_env(value: Any, *, default: list[str]) -> list[str]:
    """JSON array or comma string; strip empties; dedupe preserving order."""
    if value in (None, "", []):
        items = list(default)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            items = list(default)
        elif s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as exc:
                raise ValueError("Expected a JSON array") from exc
            if not isinstance(parsed, list):
                raise ValueError("Expected a JSON array")
            items = [str(x).strip() for x in parsed if str(x).strip()]
        else:
            items = [seg.strip() for seg in s.split(",") if seg.strip()]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = [str(x).strip() for x in value if str(x).strip()]
    else:
        raise TypeError("Expected string or list")

    seen, out = set(), []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


# ---- Settings ---------------------------------------------------------------

class _LenientEnvSettingsSource(EnvSettingsSource):
    """Environment source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(self, field_name: str, field, value: Any, value_is_complex: bool) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class _LenientDotEnvSettingsSource(DotEnvSettingsSource):
    """Dotenv source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(self, field_name: str, field, value: Any, value_is_complex: bool) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class Settings(BaseSettings):
    """Build trigger settings loaded from BM_* env vars (and .env)."""

    model_config = SettingsConfigDict(
        env_file=_env_file(),
        env_file_encoding="utf-8",
        env_prefix="BM_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        env_source = _LenientEnvSettingsSource(
            settings_cls,
            case_sensitive=getattr(env_settings, "case_sensitive", None),
            env_prefix=getattr(env_settings, "env_prefix", None),
            env_ignore_empty=getattr(env_settings, "env_ignore_empty", None),
        )
        dotenv_source = _LenientDotEnvSettingsSource(
            settings_cls,
            env_file=getattr(dotenv_settings, "env_file", None),
            env_file_encoding=getattr(dotenv_settings, "env_file_encoding", None),
            case_sensitive=getattr(dotenv_settings, "case_sensitive", None),
            env_prefix=getattr(dotenv_settings, "env_prefix", None),
            env_ignore_empty=getattr(dotenv_settings, "env_ignore_empty", None),
        )
        return (init_settings, env_source, dotenv_source, file_secret_settings)

    # ---- Core --------------------------------------------------------------
    logging_level: str = "INFO"

    # ---- Database ----------------------------------------------------------
    database_url: str | None = None
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)
    database_pool_recycle: int = Field(1800, ge=0)
    database_sqlite_journal_mode: Literal[
        "WAL",
        "DELETE",
        "TRUNCATE",
        "PERSIST",
        "MEMORY",
        "OFF",
    ] = "WAL"
    database_sqlite_synchronous: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = "NORMAL"
    database_sqlite_busy_timeout_ms: int = Field(30_000, ge=0)

    # ---- Build triggers ----------------------------------------------------
    allow_build_triggers: bool = True
    pipeline_limit: int = Field(200, ge=0)
    downscaling: float = Field(0.05, ge=0.0, le=1.0)
    allow_list: list[UUID] = Field(default_factory=list)
    active_platforms: list[Platform] = Field(default_factory=lambda: list(Platform))
    active_compiler_versions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_COMPILER_VERSIONS)
    )
    candidates_with_latest_compiler_version: bool = True
    trim_grace_period: timedelta = Field(default=DEFAULT_TRIM_GRACE_PERIOD)

    # ---- Pipeline (GitLab) -------------------------------------------------
    gitlab_api_url: str = DEFAULT_GITLAB_API_URL
    gitlab_project_id: int | None = None
    gitlab_trigger_token: str | None = None
    gitlab_api_token: str | None = None
    gitlab_ref: str = "main"
    api_base_url: str = "http://localhost:8080/api"
    pipeline_timeout_seconds: float = Field(10.0, gt=0)

    # ---- Telemetry ---------------------------------------------------------
    metrics_pushgateway_url: str | None = None

    # ---- Validators --------------------------------------------------------

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        return ("" if v is None else str(v).strip()).upper() or "INFO"

    @field_validator("database_sqlite_journal_mode", "database_sqlite_synchronous", mode="before")
    @classmethod
    def _v_sqlite_pragma_enum(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return str(v).strip().upper()

    @field_validator("allow_list", mode="before")
    @classmethod
    def _v_allow_list(cls, v: Any) -> list[str]:
        return _list_from_env(v, default=[])

    @field_validator("active_platforms", mode="before")
    @classmethod
    def _v_platforms(cls, v: Any) -> list[str]:
        return [s.lower() for s in _list_from_env(v, default=[p.value for p in Platform])]

    @field_validator("active_compiler_versions", mode="before")
    @classmethod
    def _v_compiler_versions(cls, v: Any) -> list[str]:
        raw = _list_from_env(v, default=DEFAULT_COMPILER_VERSIONS)
        parsed: list[CompilerVersion] = []
        for item in raw:
            version = CompilerVersion.parse(item)
            if version in parsed:
                raise ValueError(
                    f"BM_ACTIVE_COMPILER_VERSIONS lists {version.cell} more than once"
                )
            parsed.append(version)
        return [str(version) for version in parsed]

    @field_validator("trim_grace_period", mode="before")
    @classmethod
    def _v_durations(cls, v: Any, info: ValidationInfo) -> timedelta:
        return _parse_duration(v, field_name=info.field_name)

    @field_validator("gitlab_api_url", "api_base_url", mode="before")
    @classmethod
    def _v_http_url(cls, v: Any, info: ValidationInfo) -> str:
        s = str(v).strip()
        p = urlparse(s)
        if p.scheme not in {"http", "https"} or not p.netloc:
            raise ValueError(f"BM_{info.field_name.upper()} must be an http(s) URL")
        return s.rstrip("/")

    @field_validator("metrics_pushgateway_url", "gitlab_trigger_token", "gitlab_api_token", mode="before")
    @classmethod
    def _v_optional_str(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return str(v).strip() or None

    @model_validator(mode="after")
    def _finalize(self) -> "Settings":
        if not self.database_url:
            sqlite_path = DEFAULT_SQLITE_PATH.expanduser().resolve()
            self.database_url = f"sqlite:///{sqlite_path.as_posix()}"
        if not self.active_platforms:
            raise ValueError("BM_ACTIVE_PLATFORMS must name at least one platform")
        if not self.active_compiler_versions:
            raise ValueError("BM_ACTIVE_COMPILER_VERSIONS must name at least one version")
        return self

    # ---- Derived -----------------------------------------------------------

    @property
    def compiler_versions(self) -> list[CompilerVersion]:
        return [CompilerVersion.parse(v) for v in self.active_compiler_versions]

    @property
    def latest_compiler_version(self) -> CompilerVersion | None:
        return latest_compiler_version(self.compiler_versions)

    @property
    def allow_list_ids(self) -> frozenset[UUID]:
        return frozenset(self.allow_list)

    def build_matrix(self, *, exclude_latest_compiler_version: bool = False) -> frozenset[BuildPair]:
        return full_matrix(
            self.active_platforms,
            self.compiler_versions,
            exclude_latest_compiler_version=exclude_latest_compiler_version,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings"]
