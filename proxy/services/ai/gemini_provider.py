"""Google Gemini provider adapter."""

import logging
import re
from typing import Any, Optional

import httpx

from proxy.services.base import NetworkError, UpstreamError

from .base_provider import MAX_OUTPUT_TOKENS, BaseProvider
from .schemas import AIResponse, ProviderName

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7

# Gemini sometimes wraps JSON answers in a Markdown fence despite instructions.
_FENCE_START = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_FENCE_END = re.compile(r'\s*```$')


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```` ``` ```` / ```` ```json ```` fence and trim whitespace."""
    text = _FENCE_START.sub('', text)
    text = _FENCE_END.sub('', text)
    return text.strip()


def _first_text(response: Any) -> str:
    """Return the first candidate's first text part, or ``''`` when absent."""
    candidates = getattr(response, 'candidates', None) or []
    if not candidates:
        return ''
    content = getattr(candidates[0], 'content', None)
    parts = getattr(content, 'parts', None) or []
    if not parts:
        return ''
    return getattr(parts[0], 'text', None) or ''


def _preview(text: str, limit: int = 500) -> str:
    return text[:limit] + ('...' if len(text) > limit else '')


class GeminiProvider(BaseProvider):
    """Calls the Google Gemini API via the ``google-genai`` SDK."""

    name = ProviderName.GEMINI.value
    default_model = 'gemini-pro'
    api_key_setting = 'GEMINI_API_KEY'
    model_setting = 'GEMINI_MODEL'

    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        api_key = self._require_api_key()

        try:
            from google import genai  # noqa: PLC0415
            from google.genai import errors as genai_errors  # noqa: PLC0415
            from google.genai import types as genai_types  # noqa: PLC0415
        except ImportError as exc:
            raise ImportError(
                'google-genai package is required for GeminiProvider. '
                'Install it with: pip install google-genai'
            ) from exc

        config_kwargs: dict[str, Any] = {
            'max_output_tokens': MAX_OUTPUT_TOKENS,
            'temperature': TEMPERATURE,
        }
        if system_prompt:
            config_kwargs['system_instruction'] = system_prompt

        contents = [{'role': 'user', 'parts': [{'text': prompt}]}]

        logger.debug('Gemini request: model=%s prompt_length=%d', self.model, len(prompt))
        logger.debug('Gemini prompt preview: %s', _preview(prompt))

        try:
            with genai.Client(api_key=api_key) as client:
                response = client.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(**config_kwargs),
                )
        except genai_errors.APIError as exc:
            logger.error('Gemini API error: status=%s message=%s', exc.code, exc.message)
            message = f'Gemini API error: {exc.code}'
            detail = exc.message or exc.status
            if detail:
                message = f'{message} - {detail}'
            raise UpstreamError(self.name, exc.code, message) from exc
        except httpx.TransportError as exc:
            logger.error('Gemini unreachable: %s', exc)
            raise NetworkError(self.name, f'Gemini API unreachable: {exc}') from exc

        content = strip_code_fence(_first_text(response))

        tokens_used: Optional[int] = None
        usage = getattr(response, 'usage_metadata', None)
        if usage is not None:
            tokens_used = getattr(usage, 'total_token_count', None)

        logger.debug(
            'Gemini response: tokens_used=%s length=%d preview=%s',
            tokens_used,
            len(content),
            _preview(content),
        )

        return AIResponse(
            content=content,
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name,
        )
