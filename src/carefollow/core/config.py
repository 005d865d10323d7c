from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    data_dir: Path
    db_path: Path


DEFAULT_DATA_DIRNAME = ".carefollow"

DEFAULT_OTP_LENGTH = 4
DEFAULT_OTP_TTL_MINUTES = 10
DEFAULT_OTP_MAX_ATTEMPTS = 5
DEFAULT_FRONTEND_URL = "http://localhost:3000"
DEFAULT_COUNTRY_CODE = "91"
DEFAULT_LLM_MODEL = "llama-3.3-70b-versatile"
DEFAULT_LLM_TIMEOUT_SECONDS = 30.0
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@dataclass(frozen=True)
class Settings:
    otp_length: int = DEFAULT_OTP_LENGTH
    otp_ttl_minutes: int = DEFAULT_OTP_TTL_MINUTES
    otp_max_attempts: int = DEFAULT_OTP_MAX_ATTEMPTS
    frontend_url: str = DEFAULT_FRONTEND_URL
    default_country_code: str = DEFAULT_COUNTRY_CODE
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_sms_number: str | None = None
    twilio_whatsapp_number: str | None = None
    llm_api_key: str | None = None
    llm_base_url: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("CAREFOLLOW_HOME")
    if home_raw:
        data_dir = Path(home_raw).expanduser().resolve()
    else:
        data_dir = root / DEFAULT_DATA_DIRNAME

    return AppPaths(
        project_root=root,
        data_dir=data_dir,
        db_path=data_dir / "carefollow.db",
    )


def load_settings() -> Settings:
    llm_api_key = read_str_env("CAREFOLLOW_LLM_API_KEY")
    llm_base_url = read_str_env("CAREFOLLOW_LLM_BASE_URL")
    if llm_api_key is None and read_str_env("GROQ_API_KEY"):
        llm_api_key = read_str_env("GROQ_API_KEY")
        llm_base_url = llm_base_url or GROQ_BASE_URL
    if llm_api_key is None:
        llm_api_key = read_str_env("OPENAI_API_KEY")

    return Settings(
        otp_length=read_int_env("CAREFOLLOW_OTP_LENGTH", DEFAULT_OTP_LENGTH),
        otp_ttl_minutes=read_int_env("CAREFOLLOW_OTP_TTL_MINUTES", DEFAULT_OTP_TTL_MINUTES),
        otp_max_attempts=read_int_env("CAREFOLLOW_OTP_MAX_ATTEMPTS", DEFAULT_OTP_MAX_ATTEMPTS),
        frontend_url=read_str_env("CAREFOLLOW_FRONTEND_URL") or DEFAULT_FRONTEND_URL,
        default_country_code=read_str_env("CAREFOLLOW_DEFAULT_COUNTRY_CODE") or DEFAULT_COUNTRY_CODE,
        twilio_account_sid=read_str_env("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=read_str_env("TWILIO_AUTH_TOKEN"),
        twilio_sms_number=read_str_env("TWILIO_SMS_NUMBER"),
        twilio_whatsapp_number=read_str_env("TWILIO_WHATSAPP_NUMBER"),
        llm_api_key=llm_api_key,
        llm_base_url=llm_base_url,
        llm_model=read_str_env("CAREFOLLOW_LLM_MODEL") or DEFAULT_LLM_MODEL,
        llm_timeout_seconds=read_float_env("CAREFOLLOW_LLM_TIMEOUT_SECONDS", DEFAULT_LLM_TIMEOUT_SECONDS),
    )


def read_str_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default
