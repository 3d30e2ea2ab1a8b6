"""AI Router – selects the provider adapter for a request and wraps every call with logging."""

import logging
import time
from typing import Any, Optional

from django.conf import settings as django_settings

from proxy.services.base import QuotaExceededError, ServiceNotConfigured, UpstreamError
from .base_provider import BaseProvider
from .claude_provider import ClaudeProvider
from .gemini_provider import GeminiProvider
from .schemas import AIRequest, AIResponse, OperationType, ProviderName

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[ProviderName, type[BaseProvider]] = {
    ProviderName.GEMINI: GeminiProvider,
    ProviderName.CLAUDE: ClaudeProvider,
}


class AIRouter:
    """Central entry-point for all proxied AI calls.

    Usage::

        router = AIRouter()
        response = router.dispatch(ai_request)
        response = router.generate('Suggest a stretch', provider='claude')
    """

    def __init__(self, settings: Any = None) -> None:
        self._settings = settings or django_settings

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def dispatch(self, request: AIRequest) -> AIResponse:
        """Send *request* to its provider and return the normalized response.

        The provider is ``request.provider`` when set, otherwise the
        ``DEFAULT_PROVIDER`` setting.

        Raises:
            :class:`~proxy.services.base.ServiceNotConfigured`: Unknown default
                provider or missing API key.
            :class:`~proxy.services.base.UpstreamError`: Provider rejected the call.
            :class:`~proxy.services.base.NetworkError`: Provider unreachable.
            :class:`~proxy.services.base.QuotaExceededError`: Gemini quota is
                exhausted and the Claude fallback is unavailable or failed.
        """
        provider_name = request.provider or self.default_provider()
        provider = self._build_provider(provider_name, request.model)

        try:
            return self._call(provider, request)
        except UpstreamError as exc:
            if provider_name is ProviderName.GEMINI and exc.is_quota_error:
                return self._quota_fallback(request)
            raise

    def generate(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> AIResponse:
        """Shortcut for a one-off prompt outside the HTTP layer."""
        return self.dispatch(
            AIRequest(
                operation_type=OperationType.TIP,
                prompt=prompt,
                system_prompt=system_prompt,
                provider=ProviderName.parse(provider) if provider else None,
                model=model,
            )
        )

    def default_provider(self) -> ProviderName:
        value = getattr(self._settings, 'DEFAULT_PROVIDER', '') or ProviderName.GEMINI.value
        try:
            return ProviderName(value.lower())
        except ValueError:
            raise ServiceNotConfigured(f'DEFAULT_PROVIDER "{value}" is not a known provider.') from None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _call(self, provider: BaseProvider, request: AIRequest) -> AIResponse:
        start = time.monotonic()
        logger.info(
            'Dispatching %s request to %s (model=%s, prompt_length=%d)',
            request.operation_type.value,
            provider.name,
            provider.model,
            len(request.prompt),
        )
        try:
            response = provider.generate(request.prompt, request.system_prompt)
        except Exception:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning('%s call failed after %d ms', provider.name, duration_ms)
            raise
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            '%s responded in %d ms (tokens_used=%s)',
            provider.name,
            duration_ms,
            response.tokens_used,
        )
        return response

    def _quota_fallback(self, request: AIRequest) -> AIResponse:
        """Retry a quota-limited Gemini request once on Claude."""
        if not getattr(self._settings, 'AI_FALLBACK_ENABLED', True):
            raise QuotaExceededError('AI quota exceeded. Please try again later.')

        if not getattr(self._settings, ClaudeProvider.api_key_setting, None):
            raise QuotaExceededError(
                'AI quota exceeded. Please try again later (quota resets daily).'
            )

        logger.info('Gemini quota exceeded, attempting fallback to Claude')
        # The requested model belongs to Gemini; Claude uses its configured model.
        fallback = self._build_provider(ProviderName.CLAUDE, None)
        try:
            response = self._call(fallback, request)
        except Exception as exc:
            logger.error('Claude fallback also failed: %s', exc)
            raise QuotaExceededError(
                'AI quota exceeded and fallback unavailable. Please try again later.'
            ) from exc

        response.model = f'{response.model} (fallback)'
        return response

    def _build_provider(self, provider_name: ProviderName, model: Optional[str]) -> BaseProvider:
        """Instantiate the adapter for *provider_name* from settings."""
        cls = PROVIDER_CLASSES.get(provider_name)
        if cls is None:
            raise ServiceNotConfigured(f'No provider implementation for "{provider_name}".')
        return cls(
            api_key=getattr(self._settings, cls.api_key_setting, None),
            model=model or getattr(self._settings, cls.model_setting, None),
        )
