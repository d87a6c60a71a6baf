from __future__ import annotations

from collections.abc import Callable, Sequence
import time
from typing import Protocol

import loguru
from loguru import logger
from openai import OpenAI

from shekelstream.adapters.db.facade import DB
from shekelstream.core.config import TRANSLATION_PLACEHOLDER, AppConfig
from shekelstream.core.retry import RetryPolicy, call_with_retry


class TranslationResponseError(Exception):
    """Raised when a translation response does not line up with its inputs."""


class TranslationTransport(Protocol):
    """Sends one rendered prompt to the external model and returns its text."""

    def complete(self, prompt: str) -> str: ...


class OpenAITranslationTransport:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.2,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = OpenAI(api_key=api_key)

    def complete(self, prompt: str) -> str:
        chat = self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._temperature,
        )
        if chat and chat.choices and chat.choices[0].message:
            return chat.choices[0].message.content or ""
        return ""


def render_translation_prompt(template: str, texts: Sequence[str]) -> str:
    return template.replace(TRANSLATION_PLACEHOLDER, "\n".join(texts), 1)


def parse_translation_response(response_text: str, expected: int) -> list[str]:
    """Split a model response into per-input translations.

    The model answers with one framing line before the translations, so a
    well-formed response has `expected + 1` lines and the first is dropped.

    Raises:
        TranslationResponseError: If the line count is not `expected + 1`
    """
    lines = [line.strip() for line in response_text.split("\n")]
    if len(lines) != expected + 1:
        raise TranslationResponseError(
            f"Number of translations ({len(lines)}) does not match number of "
            f"descriptions ({expected})"
        )
    return lines[1:]


class TranslationCacheLogger:
    """Handles all logging for the translation cache."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def cache_summary(self, total: int, hits: int, misses: int) -> None:
        self._logger.bind(total=total, hits=hits, misses=misses).debug(
            "Translation cache: {} hits, {} unique misses", hits, misses
        )

    def response_received(self, texts: Sequence[str], response_text: str) -> None:
        self._logger.bind(request="\n".join(texts), response=response_text).info(
            "Translation result was received"
        )

    def mismatch(self, texts: Sequence[str], response_text: str) -> None:
        self._logger.bind(descriptions=list(texts), response=response_text).warning(
            "Translation line count mismatch for {} descriptions", len(texts)
        )

    def retry(self, error: Exception, attempt: int, max_retries: int) -> None:
        self._logger.bind(attempt=attempt, max_retries=max_retries).warning(
            "Translation attempt {} failed, retrying: {}", attempt, error
        )

    def failed(self, texts: Sequence[str], error: Exception) -> None:
        self._logger.bind(descriptions=list(texts), error_message=str(error)).opt(
            exception=error
        ).error("Failed to translate descriptions")


class TranslationCache:
    """
    Cache-aside translation of transaction descriptions.

    Cached translations are read per text; the unique misses of a batch are
    sent to the transport in a single call and written back one by one.
    When translation is disabled every call is a no-op returning `None`s.
    """

    def __init__(
        self,
        db: DB,
        transport: TranslationTransport | None,
        *,
        prompt_template: str | None,
        retry_policy: RetryPolicy = RetryPolicy(retries=5, min_timeout=20, factor=2),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._db = db
        self._transport = transport
        self._prompt_template = prompt_template
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._logger = TranslationCacheLogger()

    @classmethod
    def from_config(cls, db: DB, config: AppConfig) -> TranslationCache:
        transport: TranslationTransport | None = None
        if config.translation_enabled:
            assert config.openai_api_key and config.translation_model
            transport = OpenAITranslationTransport(
                api_key=config.openai_api_key, model=config.translation_model
            )
        return cls(
            db,
            transport,
            prompt_template=config.translation_prompt,
            retry_policy=config.translation_retry,
        )

    @property
    def enabled(self) -> bool:
        return (
            self._transport is not None
            and self._prompt_template is not None
            and TRANSLATION_PLACEHOLDER in self._prompt_template
        )

    def translate(self, texts: Sequence[str]) -> list[str | None]:
        """Translate texts, returning results aligned with the input order.

        Texts whose batch call fails after all retries map to `None`.
        """
        if not self.enabled:
            return [None] * len(texts)

        resolved: dict[str, str] = {}
        missing: list[str] = []
        for text in texts:
            if text in resolved or text in missing:
                continue
            cached = self._db.get_translation(text)
            if cached is not None:
                resolved[text] = cached
            else:
                missing.append(text)

        self._logger.cache_summary(len(texts), len(resolved), len(missing))

        if missing:
            try:
                translations = call_with_retry(
                    lambda: self._translate_batch(missing),
                    self._retry_policy,
                    sleep=self._sleep,
                    on_retry=lambda e, attempt: self._logger.retry(
                        e, attempt, self._retry_policy.retries
                    ),
                )
            except Exception as e:
                self._logger.failed(missing, e)
            else:
                for text, translation in zip(missing, translations, strict=True):
                    self._db.insert_translation(text, translation)
                    resolved[text] = translation

        return [resolved.get(text) for text in texts]

    def _translate_batch(self, texts: list[str]) -> list[str]:
        assert self._transport is not None and self._prompt_template is not None
        prompt = render_translation_prompt(self._prompt_template, texts)
        response_text = self._transport.complete(prompt)
        self._logger.response_received(texts, response_text)
        try:
            return parse_translation_response(response_text, len(texts))
        except TranslationResponseError:
            self._logger.mismatch(texts, response_text)
            raise
