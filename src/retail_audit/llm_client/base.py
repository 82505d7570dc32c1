# src/retail_audit/llm_client/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class LLMError(Exception):
    """Базовая ошибка LLM-клиента."""


class LLMRetryableError(LLMError):
    """Ошибки, при которых можно безопасно повторить запрос (5xx, 429, timeout)."""


class LLMConfigurationError(LLMError):
    """Клиент не может быть создан: нет ключа API и т.п. Фатально для всего прогона."""


@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class LLMResponse:
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[LLMUsage] = None


class LLMClient(ABC):
    """
    Абстракция LLM-клиента: пара промптов на входе, текст ответа на выходе.

    Реализация отвечает за:
    - ретраи;
    - таймауты;
    - маппинг HTTP/сетевых ошибок в LLMError/LLMRetryableError.
    Разбор JSON и доменная интерпретация - задача AdvisoryReconciler.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> LLMResponse:
        raise NotImplementedError
