"""Anthropic Claude provider adapter."""

import logging
from typing import Any, Optional

from proxy.services.base import NetworkError, UpstreamError

from .base_provider import MAX_OUTPUT_TOKENS, BaseProvider
from .schemas import AIResponse, ProviderName

logger = logging.getLogger(__name__)


class ClaudeProvider(BaseProvider):
    """Calls the Claude Messages API via the ``anthropic`` SDK."""

    name = ProviderName.CLAUDE.value
    default_model = 'claude-3-haiku-20240307'
    api_key_setting = 'CLAUDE_API_KEY'
    model_setting = 'CLAUDE_MODEL'

    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        api_key = self._require_api_key()

        try:
            import anthropic  # noqa: PLC0415 – lazy import keeps SDK optional at import time
        except ImportError as exc:
            raise ImportError(
                'anthropic package is required for ClaudeProvider. '
                'Install it with: pip install anthropic'
            ) from exc

        call_kwargs: dict[str, Any] = {
            'model': self.model,
            'max_tokens': MAX_OUTPUT_TOKENS,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        if system_prompt:
            call_kwargs['system'] = system_prompt

        logger.debug('Claude request: model=%s prompt_length=%d', self.model, len(prompt))

        # Failures surface immediately; the SDK would otherwise retry twice.
        try:
            with anthropic.Anthropic(api_key=api_key, max_retries=0) as client:
                response = client.messages.create(**call_kwargs)
        except anthropic.APIStatusError as exc:
            logger.error('Claude API error: status=%s message=%s', exc.status_code, exc.message)
            raise UpstreamError(
                self.name, exc.status_code, f'Claude API error: {exc.status_code}'
            ) from exc
        except anthropic.APIConnectionError as exc:
            logger.error('Claude unreachable: %s', exc)
            raise NetworkError(self.name, f'Claude API unreachable: {exc}') from exc

        blocks = getattr(response, 'content', None) or []
        content = (getattr(blocks[0], 'text', None) or '') if blocks else ''

        tokens_used: Optional[int] = None
        usage = getattr(response, 'usage', None)
        if usage is not None:
            tokens_used = (getattr(usage, 'input_tokens', None) or 0) + (
                getattr(usage, 'output_tokens', None) or 0
            )

        logger.debug('Claude response: tokens_used=%s length=%d', tokens_used, len(content))

        return AIResponse(
            content=content,
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name,
        )
