"""
Translator Provider Implementations

API call implementations for each translator provider:
- mock: echoes the source Markdown back (no network)
- proxy: a translation endpoint taking the source Markdown as JSON
- openai: any OpenAI-compatible chat completions endpoint

Each function takes a TranslatorService instance and a request payload and
returns the raw response text.
"""

from typing import Any, Dict

import httpx

from chunkwise.ai.exceptions import ChunkTranslationError
from chunkwise.config import DEFAULT_SYSTEM_MESSAGE, get_prompt
from chunkwise.document.markdown import TRANSLATION_END_MARKER, TRANSLATION_START_MARKER
from chunkwise.logger import get_logger

logger = get_logger(__name__)


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    timeout_value = float(timeout_config) if timeout_config else 120.0
    return httpx.Timeout(connect=10.0, write=60.0, read=timeout_value, pool=10.0)


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Raise a ChunkTranslationError carrying the status code and the server's message."""
    status_code = e.response.status_code
    error_text = "Unknown error"

    try:
        error_json = e.response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
    except ValueError:
        error_text = e.response.text[:500] or "No details"

    raise ChunkTranslationError(
        f"{provider} API error ({status_code}): {error_text}",
        code="http_error",
        details={"status_code": status_code},
    )


def call_mock_provider(service, payload: Dict[str, Any]) -> str:
    """Return the source Markdown unchanged, wrapped in translation markers."""
    logger.debug(f"  Mock translation of chunk {payload.get('chunkIndex')}")
    return f"{TRANSLATION_START_MARKER}\n{payload['sourceMarkdown']}\n{TRANSLATION_END_MARKER}"


def call_translation_proxy(service, payload: Dict[str, Any]) -> str:
    """POST the chunk to a translation proxy and return the response text."""
    provider_config = service.provider_config
    api_url = provider_config.get('api_url', '')
    api_key = provider_config.get('api_key', '')
    timeout = provider_config.get('timeout', 120)

    if not api_url:
        raise ChunkTranslationError("Translation proxy URL not configured", code="config_missing")

    headers = {"Content-Type": "application/json"}
    if api_key and api_key != "YOUR_API_KEY_HERE":
        headers["Authorization"] = f"Bearer {api_key}"

    body = dict(payload)
    model = service.model
    if model:
        body["model"] = model

    logger.debug(f"  Calling translation proxy {api_url} (chunk {payload.get('chunkIndex')})...")

    try:
        with httpx.Client(timeout=get_httpx_timeout(timeout), transport=service.transport) as client:
            response = client.post(api_url, headers=headers, json=body)
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, "Translation proxy")
    except httpx.TimeoutException:
        raise ChunkTranslationError("Translation proxy request timeout", code="timeout")
    except httpx.HTTPError as e:
        raise ChunkTranslationError(f"Translation proxy call failed: {e}", code="network_error")
    except ValueError as e:
        raise ChunkTranslationError(f"Could not parse translation proxy response as JSON: {e}", code="parse_error")

    if isinstance(result, dict):
        text = result.get('text', result.get('content'))
        if isinstance(text, str):
            logger.debug(f"  Received {len(text)} chars from translation proxy")
            return text
    raise ChunkTranslationError("No text in translation proxy response", code="parse_error")


def build_translation_prompt(service, payload: Dict[str, Any]) -> str:
    """Fill the document translation prompt for one chunk."""
    context_lines = []
    if payload.get('translationRules'):
        context_lines.extend(["", "[Translation rules]", payload['translationRules']])
    if payload.get('projectContext'):
        context_lines.extend(["", "[Project context]", payload['projectContext']])
    if payload.get('glossary'):
        context_lines.extend(["", "[Glossary]", "Follow these term translations:", payload['glossary']])

    prompt_template = get_prompt('document_translation_prompt')['prompt']
    return prompt_template.format(
        source_language=payload.get('sourceLanguage') or "the source language",
        target_language=payload['targetLanguage'],
        context_section="\n".join(context_lines),
        chunk_number=payload.get('chunkIndex', 0) + 1,
        total_chunks=payload.get('totalChunks', 1),
        source_markdown=payload['sourceMarkdown'],
    )


def call_openai_compatible(service, payload: Dict[str, Any]) -> str:
    """Call an OpenAI-compatible chat completions endpoint."""
    provider_config = service.provider_config
    api_key = provider_config.get('api_key', '')
    api_url = provider_config.get('api_url') or 'https://api.openai.com/v1/chat/completions'
    timeout = provider_config.get('timeout', 120)
    model = service.model or 'gpt-4o-mini'

    if not api_key or api_key == "YOUR_API_KEY_HERE":
        raise ChunkTranslationError("OpenAI API key not configured", code="config_missing")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": provider_config.get('system_message', DEFAULT_SYSTEM_MESSAGE)},
            {"role": "user", "content": build_translation_prompt(service, payload)},
        ],
    }

    logger.debug(f"  Calling OpenAI-compatible API (model: {model})...")

    try:
        with httpx.Client(timeout=get_httpx_timeout(timeout), transport=service.transport) as client:
            response = client.post(api_url, headers=headers, json=body)
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, "OpenAI")
    except httpx.TimeoutException:
        raise ChunkTranslationError("OpenAI API request timeout", code="timeout")
    except httpx.HTTPError as e:
        raise ChunkTranslationError(f"OpenAI API call failed: {e}", code="network_error")
    except ValueError as e:
        raise ChunkTranslationError(f"Could not parse OpenAI response as JSON: {e}", code="parse_error")

    usage = result.get('usage', {}) if isinstance(result, dict) else {}
    service.record_usage(usage.get('prompt_tokens', 0), usage.get('completion_tokens', 0))

    choices = result.get('choices') if isinstance(result, dict) else None
    if choices:
        content = (choices[0].get('message') or {}).get('content') or ''
        if content:
            logger.debug(f"  Received {len(content)} chars from OpenAI (tokens: {usage})")
            return content

    raise ChunkTranslationError("No content in OpenAI response", code="parse_error")
