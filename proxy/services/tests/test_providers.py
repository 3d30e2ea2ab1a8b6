"""
Unit tests for the Gemini and Claude adapters (no live provider required).
"""

import unittest
from types import SimpleNamespace
from unittest.mock import patch

import anthropic
import httpx
from google.genai import errors as genai_errors

from proxy.services.ai.claude_provider import ClaudeProvider
from proxy.services.ai.gemini_provider import GeminiProvider, strip_code_fence
from proxy.services.base import NetworkError, ServiceNotConfigured, UpstreamError


def _gemini_response(text=None, total_tokens=None, candidates=True):
    parts = [SimpleNamespace(text=text)] if text is not None else []
    usage = (
        SimpleNamespace(total_token_count=total_tokens) if total_tokens is not None else None
    )
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))] if candidates else None,
        usage_metadata=usage,
    )


def _claude_response(text=None, input_tokens=None, output_tokens=None):
    content = [SimpleNamespace(type='text', text=text)] if text is not None else []
    usage = None
    if input_tokens is not None or output_tokens is not None:
        usage = SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens)
    return SimpleNamespace(content=content, usage=usage)


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class TestGeminiProvider(unittest.TestCase):
    def setUp(self):
        patcher = patch('google.genai.Client')
        self.client_cls = patcher.start()
        self.addCleanup(patcher.stop)
        client = self.client_cls.return_value
        client.__enter__.return_value = client
        self.generate_content = self.client_cls.return_value.models.generate_content

    def test_normalizes_response(self):
        self.generate_content.return_value = _gemini_response('Drink water', 42)
        provider = GeminiProvider(api_key='g-key', model='gemini-2.5-flash')

        result = provider.generate('How much water?')

        self.assertEqual(result.to_dict(), {
            'content': 'Drink water',
            'tokensUsed': 42,
            'model': 'gemini-2.5-flash',
            'provider': 'gemini',
        })
        self.client_cls.assert_called_once_with(api_key='g-key')
        self.client_cls.return_value.__exit__.assert_called_once()

    def test_missing_usage_yields_none(self):
        self.generate_content.return_value = _gemini_response('Drink water')
        result = GeminiProvider(api_key='g-key').generate('hi')
        self.assertIsNone(result.tokens_used)

    def test_missing_candidates_yields_empty_content(self):
        self.generate_content.return_value = _gemini_response(candidates=False, total_tokens=3)
        result = GeminiProvider(api_key='g-key').generate('hi')
        self.assertEqual(result.content, '')
        self.assertEqual(result.tokens_used, 3)

    def test_empty_parts_yield_empty_content(self):
        self.generate_content.return_value = _gemini_response()
        result = GeminiProvider(api_key='g-key').generate('hi')
        self.assertEqual(result.content, '')

    @patch('google.genai.types.GenerateContentConfig')
    def test_request_shape_and_fixed_generation_params(self, config_cls):
        self.generate_content.return_value = _gemini_response('ok')
        GeminiProvider(api_key='g-key', model='gemini-pro').generate('Plan my week', 'Be brief')

        config_cls.assert_called_once_with(
            max_output_tokens=2048,
            temperature=0.7,
            system_instruction='Be brief',
        )
        self.generate_content.assert_called_once_with(
            model='gemini-pro',
            contents=[{'role': 'user', 'parts': [{'text': 'Plan my week'}]}],
            config=config_cls.return_value,
        )

    @patch('google.genai.types.GenerateContentConfig')
    def test_no_system_instruction_when_absent(self, config_cls):
        self.generate_content.return_value = _gemini_response('ok')
        GeminiProvider(api_key='g-key').generate('Plan my week')
        self.assertNotIn('system_instruction', config_cls.call_args.kwargs)

    def test_default_model_when_unconfigured(self):
        self.generate_content.return_value = _gemini_response('ok')
        result = GeminiProvider(api_key='g-key', model='').generate('hi')
        self.assertEqual(result.model, 'gemini-pro')

    def test_strips_json_code_fence(self):
        self.generate_content.return_value = _gemini_response('```json\n{"a": 1}\n```')
        result = GeminiProvider(api_key='g-key').generate('hi')
        self.assertEqual(result.content, '{"a": 1}')

    def test_missing_api_key_raises_before_calling(self):
        with self.assertRaises(ServiceNotConfigured) as ctx:
            GeminiProvider(api_key='').generate('hi')
        self.assertIn('GEMINI_API_KEY', str(ctx.exception))
        self.client_cls.assert_not_called()

    def test_upstream_status_raises_upstream_error(self):
        self.generate_content.side_effect = genai_errors.ClientError(
            429,
            {'error': {'code': 429, 'message': 'Quota exceeded', 'status': 'RESOURCE_EXHAUSTED'}},
        )
        with self.assertRaises(UpstreamError) as ctx:
            GeminiProvider(api_key='g-key').generate('hi')
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn('429', str(ctx.exception))
        self.assertTrue(ctx.exception.is_quota_error)

    def test_transport_failure_raises_network_error(self):
        self.generate_content.side_effect = httpx.ConnectError('connection refused')
        with self.assertRaises(NetworkError) as ctx:
            GeminiProvider(api_key='g-key').generate('hi')
        self.assertEqual(ctx.exception.provider, 'gemini')


class TestStripCodeFence(unittest.TestCase):
    def test_plain_text_untouched(self):
        self.assertEqual(strip_code_fence('Drink water'), 'Drink water')

    def test_bare_fence(self):
        self.assertEqual(strip_code_fence('```\n[1, 2]\n```'), '[1, 2]')

    def test_uppercase_json_tag(self):
        self.assertEqual(strip_code_fence('```JSON {"a": 1}```'), '{"a": 1}')


# ---------------------------------------------------------------------------
# Claude
# ---------------------------------------------------------------------------

class TestClaudeProvider(unittest.TestCase):
    def setUp(self):
        patcher = patch('anthropic.Anthropic')
        self.client_cls = patcher.start()
        self.addCleanup(patcher.stop)
        client = self.client_cls.return_value
        client.__enter__.return_value = client
        self.create = self.client_cls.return_value.messages.create

    def _request(self):
        return httpx.Request('POST', 'https://api.anthropic.com/v1/messages')

    def test_normalizes_response_and_sums_usage(self):
        self.create.return_value = _claude_response('Stretch daily', 10, 8)
        provider = ClaudeProvider(api_key='c-key', model='claude-3-haiku-20240307')

        result = provider.generate('Any tips?')

        self.assertEqual(result.to_dict(), {
            'content': 'Stretch daily',
            'tokensUsed': 18,
            'model': 'claude-3-haiku-20240307',
            'provider': 'claude',
        })
        self.client_cls.assert_called_once_with(api_key='c-key', max_retries=0)
        self.client_cls.return_value.__exit__.assert_called_once()

    def test_missing_usage_yields_none(self):
        self.create.return_value = _claude_response('Stretch daily')
        result = ClaudeProvider(api_key='c-key').generate('hi')
        self.assertIsNone(result.tokens_used)

    def test_empty_content_yields_empty_string(self):
        self.create.return_value = _claude_response(input_tokens=4, output_tokens=0)
        result = ClaudeProvider(api_key='c-key').generate('hi')
        self.assertEqual(result.content, '')
        self.assertEqual(result.tokens_used, 4)

    def test_system_prompt_sent_as_top_level_field(self):
        self.create.return_value = _claude_response('ok')
        ClaudeProvider(api_key='c-key', model='claude-x').generate('Plan my week', 'Be brief')
        self.create.assert_called_once_with(
            model='claude-x',
            max_tokens=2048,
            messages=[{'role': 'user', 'content': 'Plan my week'}],
            system='Be brief',
        )

    def test_system_field_omitted_when_absent(self):
        self.create.return_value = _claude_response('ok')
        ClaudeProvider(api_key='c-key').generate('Plan my week')
        self.assertNotIn('system', self.create.call_args.kwargs)

    def test_missing_api_key_raises_before_calling(self):
        with self.assertRaises(ServiceNotConfigured) as ctx:
            ClaudeProvider(api_key=None).generate('hi')
        self.assertIn('CLAUDE_API_KEY', str(ctx.exception))
        self.client_cls.assert_not_called()

    def test_upstream_status_raises_upstream_error(self):
        response = httpx.Response(529, request=self._request())
        self.create.side_effect = anthropic.InternalServerError(
            'Overloaded', response=response, body=None
        )
        with self.assertRaises(UpstreamError) as ctx:
            ClaudeProvider(api_key='c-key').generate('hi')
        self.assertEqual(ctx.exception.status_code, 529)
        self.assertEqual(str(ctx.exception), 'Claude API error: 529')

    def test_connection_failure_raises_network_error(self):
        self.create.side_effect = anthropic.APIConnectionError(request=self._request())
        with self.assertRaises(NetworkError) as ctx:
            ClaudeProvider(api_key='c-key').generate('hi')
        self.assertEqual(ctx.exception.provider, 'claude')


class TestClaudeProviderTransport(unittest.TestCase):
    """Runs the real SDK client against a canned HTTP transport."""

    def setUp(self):
        self.calls = []
        real_client_cls = anthropic.Anthropic

        def build_client(**kwargs):
            http_client = httpx.Client(transport=httpx.MockTransport(self._respond))
            return real_client_cls(http_client=http_client, **kwargs)

        patcher = patch('anthropic.Anthropic', side_effect=build_client)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _respond(self, request):
        self.calls.append(request)
        return httpx.Response(
            self.status,
            json={'type': 'error', 'error': {'type': 'api_error', 'message': 'Internal error'}},
        )

    def test_server_error_is_sent_once(self):
        self.status = 500
        with self.assertRaises(UpstreamError) as ctx:
            ClaudeProvider(api_key='c-key').generate('hi')
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(len(self.calls), 1)

    def test_rate_limited_response_is_sent_once(self):
        self.status = 429
        with self.assertRaises(UpstreamError):
            ClaudeProvider(api_key='c-key').generate('hi')
        self.assertEqual(len(self.calls), 1)


if __name__ == '__main__':
    unittest.main()
