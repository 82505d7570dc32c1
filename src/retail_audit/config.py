# src/retail_audit/config.py
from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

# Загружаем .env
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class RetryConfig:
    max_retries: int = 3
    backoff_factor: float = 0.5  # базовая задержка, растёт как factor * 2**(n-1)
    retry_on_5xx: bool = True
    retry_on_429: bool = True
    retry_on_timeout: bool = True


@dataclass
class LLMApiConfig:
    """
    Конфиг LLM-провайдера.
    По умолчанию OpenAI-совместимый chat/completions, но base_url и model
    можно переопределить через окружение (любой совместимый провайдер).
    """
    provider: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    api_key_env_var: str = "OPENAI_API_KEY"
    timeout_seconds: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    model: str = "gpt-4o-mini"
    endpoint: str = "/chat/completions"
    max_tokens: int = 600


@dataclass
class AuditConfig:
    # Сколько записей обрабатываем за одну пачку
    batch_size: int = 20
    # Максимум одновременных запросов к LLM внутри пачки
    concurrency: int = 10
    # Кэш нормализации единиц сбрасывается, когда превышает этот размер
    unit_cache_max_size: int = 1024


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///data/retail_audit.db"
    echo: bool = False


@dataclass
class AppConfig:
    llm: LLMApiConfig = field(default_factory=LLMApiConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def load_config() -> AppConfig:
    """
    Собирает AppConfig из дефолтов и переменных окружения.
    """
    llm = LLMApiConfig(
        base_url=os.getenv("AUDIT_LLM_BASE_URL", LLMApiConfig.base_url),
        model=os.getenv("AUDIT_LLM_MODEL", LLMApiConfig.model),
        timeout_seconds=_env_float("AUDIT_LLM_TIMEOUT", LLMApiConfig.timeout_seconds),
        retry=RetryConfig(max_retries=_env_int("AUDIT_LLM_MAX_RETRIES", RetryConfig.max_retries)),
    )
    audit = AuditConfig(
        batch_size=_env_int("AUDIT_BATCH_SIZE", AuditConfig.batch_size),
        concurrency=_env_int("AUDIT_CONCURRENCY", AuditConfig.concurrency),
    )
    database = DatabaseConfig(url=os.getenv("AUDIT_DATABASE_URL", DatabaseConfig.url))
    return AppConfig(llm=llm, audit=audit, database=database)


# Глобальный объект конфига: `from retail_audit.config import config`
config = load_config()
