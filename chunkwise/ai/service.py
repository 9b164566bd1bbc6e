"""
Translator Service Module

This module provides the translate_chunk implementation used by the web layer:
- TranslatorService class turning one chunk into a translated document
- Configuration validation
- Error handling and retry logic

For provider-specific API implementations, see ai/providers.py
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from chunkwise.ai.exceptions import ChunkTranslationError, TranslationError
from chunkwise.chunking.types import ChunkTranslation, TranslateChunkParams
from chunkwise.config import PROVIDER_DEFAULTS, SUPPORTED_PROVIDERS, load_config
from chunkwise.document.exceptions import ConversionError
from chunkwise.document.linearizer import DocumentLinearizer
from chunkwise.document.markdown import detect_markdown_truncation, extract_translation_markdown
from chunkwise.logger import get_logger

logger = get_logger(__name__)


def validate_translator_config(config: Optional[Dict[str, Any]] = None,
                               provider_override: Optional[str] = None) -> None:
    """
    Validate that the translator configuration is usable.

    Args:
        config: Full configuration dict (loaded from disk when omitted).
        provider_override: Optional provider to validate instead of the configured one.

    Raises:
        TranslationError: If configuration is invalid or missing, with code and details.
    """
    if config is None:
        config = load_config()
    translator_config = config.get('translator', {})
    provider = provider_override or translator_config.get('provider', 'mock')

    if provider not in SUPPORTED_PROVIDERS:
        raise TranslationError(
            f"Unsupported translator provider: {provider}",
            code="translator_config_invalid",
            details={"provider": provider, "supported": SUPPORTED_PROVIDERS}
        )

    if not translator_config.get('target_language'):
        raise TranslationError(
            "Target language not configured",
            code="translator_config_missing",
            details={"provider": provider, "missing_field": "target_language"}
        )

    if provider == 'proxy' and not translator_config.get('api_url'):
        raise TranslationError(
            "Translation proxy URL not configured",
            code="translator_config_missing",
            details={"provider": provider, "missing_field": "api_url"}
        )

    if provider == 'openai':
        api_key = translator_config.get('api_key', '')
        if not api_key or api_key == "YOUR_API_KEY_HERE":
            raise TranslationError(
                "OpenAI API key not configured",
                code="translator_config_missing",
                details={"provider": provider, "missing_field": "api_key"}
            )


class TranslatorService:
    """Translates single chunks through the configured provider."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        provider_override: Optional[str] = None,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
        linearizer: Optional[DocumentLinearizer] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config if config is not None else load_config()
        self.provider_config = dict(PROVIDER_DEFAULTS)
        self.provider_config.update(self.config.get('translator', {}))
        self.provider = provider_override or self.provider_config.get('provider', 'mock')
        self.source_language = source_language or self.provider_config.get('source_language', '')
        self.target_language = target_language or self.provider_config.get('target_language', '')
        self.linearizer = linearizer or DocumentLinearizer()
        # httpx transport override, used by tests to avoid the network
        self.transport = transport
        self._sleep = sleep
        # Token usage tracking
        self._last_token_usage = {'prompt_tokens': 0, 'completion_tokens': 0}
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        logger.info(f"Initialized translator service with provider: {self.provider}")

    @property
    def model(self) -> str:
        return self.provider_config.get('model', '')

    def record_usage(self, prompt_tokens: int, completion_tokens: int):
        """Record token usage of the last API call and add it to the totals."""
        self._last_token_usage = {'prompt_tokens': prompt_tokens, 'completion_tokens': completion_tokens}
        self.total_prompt_tokens += prompt_tokens
        self.total_completion_tokens += completion_tokens

    def get_last_token_usage(self) -> Dict[str, int]:
        """Get token usage from the last API call."""
        return self._last_token_usage.copy()

    def get_total_token_usage(self) -> Dict[str, int]:
        """Get accumulated token usage."""
        return {
            'prompt_tokens': self.total_prompt_tokens,
            'completion_tokens': self.total_completion_tokens,
        }

    def build_payload(self, params: TranslateChunkParams) -> Dict[str, Any]:
        """Linearize the chunk and build the request payload."""
        try:
            source_markdown = self.linearizer.to_markdown(params.source_content)
        except ConversionError as e:
            raise ChunkTranslationError(
                f"Chunk {params.chunk_index} could not be converted to Markdown: {e}",
                code="conversion_error",
            )

        return {
            "sourceMarkdown": source_markdown,
            "sourceLanguage": self.source_language,
            "targetLanguage": self.target_language,
            "translationRules": params.translation_rules or "",
            "projectContext": params.project_context or "",
            "glossary": params.glossary or "",
            "chunkIndex": params.chunk_index,
            "totalChunks": params.total_chunks,
        }

    def translate_chunk(self, params: TranslateChunkParams) -> ChunkTranslation:
        """
        Translate one chunk.

        Retries transient failures with backoff. Truncated or unparseable
        output counts as a failure.

        Args:
            params: The chunk and its translation context

        Returns:
            ChunkTranslation holding the translated document

        Raises:
            ChunkTranslationError: If every attempt failed
        """
        payload = self.build_payload(params)
        logger.debug(
            f"Translating chunk {params.chunk_index + 1}/{params.total_chunks} "
            f"({len(payload['sourceMarkdown'])} chars) to {self.target_language}"
        )

        max_retries = max(int(self.provider_config.get('max_retries', 3)), 1)
        last_error = None

        for attempt in range(max_retries):
            try:
                if attempt > 0:
                    logger.info(f"  Retry attempt {attempt + 1}/{max_retries}")

                response_text = self._call_provider(payload)
                logger.debug(f"  Output from translator (response):\n{response_text}")

                translated_markdown = extract_translation_markdown(response_text)
                if not translated_markdown:
                    raise ChunkTranslationError("Translator returned an empty response", code="parse_error")
                if detect_markdown_truncation(translated_markdown):
                    raise ChunkTranslationError("Translated Markdown appears truncated", code="truncated")

                try:
                    translated = self.linearizer.delinearize(translated_markdown)
                except ConversionError as e:
                    raise ChunkTranslationError(f"Could not parse translated Markdown: {e}", code="parse_error")

                logger.info(f"Chunk {params.chunk_index + 1}/{params.total_chunks} translated")
                return ChunkTranslation(translated_content=translated, raw_response_text=response_text)

            except TranslationError as e:
                last_error = e
                should_retry, wait_time = self._categorize_error(e, attempt)

                if should_retry and attempt < max_retries - 1:
                    logger.warning(f"  Attempt {attempt + 1} failed: {e}. Waiting {wait_time}s before retry...")
                    self._sleep(wait_time)
                elif not should_retry:
                    logger.error(f"  Non-recoverable error: {e}")
                    break

        logger.error(f"Chunk {params.chunk_index} failed after {attempt + 1} attempts: {last_error}")
        if isinstance(last_error, ChunkTranslationError):
            raise last_error
        raise ChunkTranslationError(str(last_error), code=last_error.code, details=last_error.details)

    def _call_provider(self, payload: Dict[str, Any]) -> str:
        """Call the configured provider and return raw response text."""
        from chunkwise.ai.providers import (
            call_mock_provider,
            call_openai_compatible,
            call_translation_proxy,
        )

        if self.provider == 'mock':
            return call_mock_provider(self, payload)
        elif self.provider == 'proxy':
            return call_translation_proxy(self, payload)
        elif self.provider == 'openai':
            return call_openai_compatible(self, payload)
        else:
            raise TranslationError(f"Unsupported translator provider: {self.provider}", code="translator_config_invalid")

    def _categorize_error(self, error: Exception, attempt: int) -> Tuple[bool, float]:
        """
        Categorize an error and determine retry strategy.

        Returns:
            Tuple of (should_retry, wait_time_seconds)
        """
        code = getattr(error, 'code', None)
        details = getattr(error, 'details', None) or {}
        status_code = details.get('status_code')
        error_str = str(error).lower()

        # Missing or invalid configuration - don't retry
        if code in ('config_missing', 'translator_config_invalid', 'conversion_error'):
            return False, 0

        # Rate limiting (429) - long backoff
        if status_code == 429 or 'rate limit' in error_str or 'too many requests' in error_str:
            wait_time = 30 * (2 ** attempt)  # 30s, 60s, 120s
            return True, min(wait_time, 300)  # Max 5 minutes

        # Authentication errors (401, 403) - don't retry
        if status_code in (401, 403) or 'unauthorized' in error_str or 'forbidden' in error_str:
            return False, 0

        # Invalid request (400, 404, 422) - don't retry
        if status_code in (400, 404, 422):
            return False, 0

        # Server errors (5xx) - standard backoff
        if status_code is not None and status_code >= 500:
            return True, 2 ** attempt

        # Timeout - retry with backoff
        if code == 'timeout' or 'timeout' in error_str:
            return True, 5 * (2 ** attempt)  # 5s, 10s, 20s

        # Parse errors and truncated output - retry once
        if code in ('parse_error', 'truncated'):
            return attempt < 1, 1.0

        # Unknown errors - standard backoff
        return True, 2 ** attempt
