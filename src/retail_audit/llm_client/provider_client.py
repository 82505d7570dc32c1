# src/retail_audit/llm_client/provider_client.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import httpx

from retail_audit.config import LLMApiConfig, config
from retail_audit.llm_client.base import (
    LLMClient,
    LLMConfigurationError,
    LLMError,
    LLMResponse,
    LLMRetryableError,
    LLMUsage,
)


logger = logging.getLogger(__name__)


class ProviderLLMClient(LLMClient):
    """
    Реализация LLMClient через OpenAI-совместимый HTTP API (chat/completions).
    """

    def __init__(self, llm_config: Optional[LLMApiConfig] = None) -> None:
        self._config = llm_config or config.llm
        self._base_url = self._config.base_url
        self._api_key = os.getenv(self._config.api_key_env_var, "")
        if not self._api_key:
            # Не падаем молча посреди пачки, а сразу даём явную ошибку конфигурации
            raise LLMConfigurationError(
                f"Missing API key in env var {self._config.api_key_env_var}"
            )

        self._timeout = self._config.timeout_seconds
        self._retry_conf = self._config.retry

    @property
    def model(self) -> str:
        return self._config.model

    async def _post_with_retries(self, endpoint: str, json: Dict[str, Any]) -> httpx.Response:
        """
        Базовый метод отправки POST-запросов с ретраями по 5xx/429 и сетевым ошибкам.
        """
        url = f"{self._base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        attempt = 0
        last_exc: Exception | None = None
        last_status: int | None = None

        while attempt <= self._retry_conf.max_retries:
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=json, headers=self._build_headers())

                retryable_status = (
                    (response.status_code >= 500 and self._retry_conf.retry_on_5xx)
                    or (response.status_code == 429 and self._retry_conf.retry_on_429)
                )
                if not retryable_status:
                    return response

                last_status = response.status_code
                last_exc = None
                logger.warning(
                    "LLM API returned HTTP %s (attempt %s/%s)",
                    response.status_code,
                    attempt + 1,
                    self._retry_conf.max_retries + 1,
                )

            except httpx.TransportError as exc:
                # Таймауты, обрывы соединения, RemoteProtocolError и т.п.
                last_exc = exc
                logger.warning(
                    "LLM request failed: %s (attempt %s/%s)",
                    exc.__class__.__name__,
                    attempt + 1,
                    self._retry_conf.max_retries + 1,
                )
                if not self._retry_conf.retry_on_timeout:
                    break

            attempt += 1
            if attempt > self._retry_conf.max_retries:
                break
            await self._sleep_backoff(attempt)

        # Если сюда дошли - ретраи не помогли
        if last_exc is not None:
            raise LLMRetryableError(f"Request to {url} failed after retries: {last_exc!r}") from last_exc

        raise LLMRetryableError(f"Request to {url} failed with status {last_status}")

    async def _sleep_backoff(self, attempt: int) -> None:
        # Экспоненциальный backoff: factor, 2*factor, 4*factor, ...
        delay = self._retry_conf.backoff_factor * (2 ** (attempt - 1))
        await asyncio.sleep(delay)

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: Optional[int],
        json_mode: bool,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens or self._config.max_tokens,
            "stream": False,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> LLMResponse:
        payload = self._build_payload(system_prompt, user_prompt, temperature, max_tokens, json_mode)

        response = await self._post_with_retries(
            endpoint=self._config.endpoint,
            json=payload,
        )

        if response.status_code == 401:
            raise LLMError(
                "LLM API authentication failed. "
                f"Please check if {self._config.api_key_env_var} is valid."
            )

        if response.status_code >= 400:
            raise LLMError(
                f"LLM API returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError("Failed to parse LLM response as JSON") from exc

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("Failed to extract content from LLM response") from exc

        if not isinstance(content, str):
            raise LLMError("LLM response content is not a string")

        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = LLMUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )

        return LLMResponse(content=content, finish_reason=choice.get("finish_reason"), usage=usage)
