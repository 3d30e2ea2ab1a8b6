"""Tests for provider selection and the quota fallback in AIRouter."""

import unittest
from types import SimpleNamespace
from unittest.mock import patch

from proxy.services.ai.claude_provider import ClaudeProvider
from proxy.services.ai.gemini_provider import GeminiProvider
from proxy.services.ai.router import AIRouter
from proxy.services.ai.schemas import AIRequest, AIResponse, OperationType, ProviderName
from proxy.services.base import (
    NetworkError,
    QuotaExceededError,
    ServiceNotConfigured,
    UpstreamError,
)


def _settings(**overrides):
    values = dict(
        GEMINI_API_KEY='g-key',
        CLAUDE_API_KEY='c-key',
        DEFAULT_PROVIDER='gemini',
        GEMINI_MODEL='gemini-2.5-flash',
        CLAUDE_MODEL='claude-3-haiku-20240307',
        AI_FALLBACK_ENABLED=True,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _request(**kwargs):
    kwargs.setdefault('operation_type', OperationType.INSIGHT)
    kwargs.setdefault('prompt', 'How did I sleep?')
    return AIRequest(**kwargs)


def _response(provider, model):
    return AIResponse(content='ok', tokens_used=5, model=model, provider=provider)


class AIRouterSelectionTest(unittest.TestCase):
    def test_default_provider_used_when_request_omits_it(self):
        router = AIRouter(_settings(DEFAULT_PROVIDER='gemini'))
        with patch.object(GeminiProvider, 'generate', return_value=_response('gemini', 'g')) as gemini, \
                patch.object(ClaudeProvider, 'generate') as claude:
            result = router.dispatch(_request())
        gemini.assert_called_once_with('How did I sleep?', None)
        claude.assert_not_called()
        self.assertEqual(result.provider, 'gemini')

    def test_request_provider_overrides_default(self):
        router = AIRouter(_settings(DEFAULT_PROVIDER='gemini'))
        with patch.object(GeminiProvider, 'generate') as gemini, \
                patch.object(ClaudeProvider, 'generate', return_value=_response('claude', 'c')) as claude:
            router.dispatch(_request(provider=ProviderName.CLAUDE, system_prompt='Coach'))
        claude.assert_called_once_with('How did I sleep?', 'Coach')
        gemini.assert_not_called()

    def test_default_provider_is_case_insensitive(self):
        router = AIRouter(_settings(DEFAULT_PROVIDER='Claude'))
        self.assertIs(router.default_provider(), ProviderName.CLAUDE)

    def test_unknown_default_provider_is_a_configuration_error(self):
        router = AIRouter(_settings(DEFAULT_PROVIDER='openai'))
        with self.assertRaises(ServiceNotConfigured):
            router.dispatch(_request())

    def test_configured_model_reaches_adapter(self):
        router = AIRouter(_settings(CLAUDE_MODEL='claude-sonnet'))
        provider = router._build_provider(ProviderName.CLAUDE, None)
        self.assertEqual(provider.model, 'claude-sonnet')

    def test_request_model_overrides_configured_model(self):
        router = AIRouter(_settings())
        provider = router._build_provider(ProviderName.GEMINI, 'gemini-1.5-pro')
        self.assertEqual(provider.model, 'gemini-1.5-pro')

    def test_missing_key_surfaces_configuration_error(self):
        router = AIRouter(_settings(CLAUDE_API_KEY=''))
        with self.assertRaises(ServiceNotConfigured):
            router.dispatch(_request(provider=ProviderName.CLAUDE))

    def test_generate_shortcut(self):
        router = AIRouter(_settings())
        with patch.object(ClaudeProvider, 'generate', return_value=_response('claude', 'c')) as claude:
            router.generate('Tip please', provider='claude', system_prompt='Short')
        claude.assert_called_once_with('Tip please', 'Short')


class AIRouterFallbackTest(unittest.TestCase):
    quota_error = UpstreamError('gemini', 429, 'Gemini API error: 429 - RESOURCE_EXHAUSTED')

    def test_gemini_quota_falls_back_to_claude(self):
        router = AIRouter(_settings())
        with patch.object(GeminiProvider, 'generate', side_effect=self.quota_error), \
                patch.object(
                    ClaudeProvider,
                    'generate',
                    return_value=_response('claude', 'claude-3-haiku-20240307'),
                ):
            result = router.dispatch(_request())
        self.assertEqual(result.provider, 'claude')
        self.assertEqual(result.model, 'claude-3-haiku-20240307 (fallback)')

    def test_fallback_ignores_gemini_model_override(self):
        router = AIRouter(_settings(CLAUDE_MODEL='claude-x'))
        with patch.object(GeminiProvider, 'generate', side_effect=self.quota_error), \
                patch.object(ClaudeProvider, 'generate', autospec=True) as claude:
            claude.side_effect = lambda provider, prompt, system: _response('claude', provider.model)
            result = router.dispatch(_request(model='gemini-1.5-pro'))
        self.assertEqual(result.model, 'claude-x (fallback)')

    def test_quota_without_claude_key_raises_quota_exceeded(self):
        router = AIRouter(_settings(CLAUDE_API_KEY=''))
        with patch.object(GeminiProvider, 'generate', side_effect=self.quota_error):
            with self.assertRaises(QuotaExceededError) as ctx:
                router.dispatch(_request())
        self.assertIn('quota resets daily', str(ctx.exception))

    def test_failed_fallback_raises_quota_exceeded(self):
        router = AIRouter(_settings())
        with patch.object(GeminiProvider, 'generate', side_effect=self.quota_error), \
                patch.object(ClaudeProvider, 'generate', side_effect=NetworkError('claude', 'down')):
            with self.assertRaises(QuotaExceededError) as ctx:
                router.dispatch(_request())
        self.assertIn('fallback unavailable', str(ctx.exception))

    def test_fallback_disabled(self):
        router = AIRouter(_settings(AI_FALLBACK_ENABLED=False))
        with patch.object(GeminiProvider, 'generate', side_effect=self.quota_error), \
                patch.object(ClaudeProvider, 'generate') as claude:
            with self.assertRaises(QuotaExceededError):
                router.dispatch(_request())
        claude.assert_not_called()

    def test_non_quota_upstream_error_propagates(self):
        router = AIRouter(_settings())
        error = UpstreamError('gemini', 500, 'Gemini API error: 500')
        with patch.object(GeminiProvider, 'generate', side_effect=error), \
                patch.object(ClaudeProvider, 'generate') as claude:
            with self.assertRaises(UpstreamError):
                router.dispatch(_request())
        claude.assert_not_called()

    def test_claude_quota_error_is_not_retried(self):
        router = AIRouter(_settings())
        error = UpstreamError('claude', 429, 'Claude API error: 429')
        with patch.object(ClaudeProvider, 'generate', side_effect=error) as claude, \
                patch.object(GeminiProvider, 'generate') as gemini:
            with self.assertRaises(UpstreamError):
                router.dispatch(_request(provider=ProviderName.CLAUDE))
        claude.assert_called_once()
        gemini.assert_not_called()
