import json
from unittest.mock import patch

from django.test import SimpleTestCase, override_settings
from django.urls import reverse

from .services.ai.claude_provider import ClaudeProvider
from .services.ai.gemini_provider import GeminiProvider
from .services.ai.schemas import AIResponse
from .services.base import NetworkError, QuotaExceededError, UpstreamError
from .services.ratelimit import reset_rate_limiter
from .views import PARSE_SYSTEM_PROMPT

OPERATION_PATHS = ['/api/ai/insights', '/api/ai/workout', '/api/ai/tip', '/api/ai/parse']

PROXY_SETTINGS = dict(
    GEMINI_API_KEY='g-key',
    CLAUDE_API_KEY='c-key',
    DEFAULT_PROVIDER='gemini',
    GEMINI_MODEL='gemini-2.5-flash',
    CLAUDE_MODEL='claude-3-haiku-20240307',
    RATE_LIMIT_RPM=30,
    RATE_LIMIT_STORE='memory',
    ENVIRONMENT='test',
)


def gemini_reply(*args, **kwargs):
    return AIResponse(content='Drink water', tokens_used=42, model='gemini-2.5-flash', provider='gemini')


def claude_reply(*args, **kwargs):
    return AIResponse(
        content='Stretch daily', tokens_used=18, model='claude-3-haiku-20240307', provider='claude'
    )


@override_settings(**PROXY_SETTINGS)
class ProxyViewTestCase(SimpleTestCase):
    def setUp(self):
        reset_rate_limiter()
        self.addCleanup(reset_rate_limiter)

    def post_json(self, path, body, device_id=None):
        extra = {'HTTP_X_DEVICE_ID': device_id} if device_id else {}
        data = body if isinstance(body, str) else json.dumps(body)
        return self.client.post(path, data=data, content_type='application/json', **extra)

    def assertError(self, response, status, code):
        self.assertEqual(response.status_code, status)
        self.assertEqual(response['Content-Type'], 'application/json')
        self.assertEqual(response.json()['error']['code'], code)
        return response.json()['error']['message']


class OperationEndpointTest(ProxyViewTestCase):
    def test_operation_urls(self):
        self.assertEqual(reverse('proxy:insights'), '/api/ai/insights')
        self.assertEqual(reverse('proxy:workout'), '/api/ai/workout')
        self.assertEqual(reverse('proxy:tip'), '/api/ai/tip')
        self.assertEqual(reverse('proxy:parse'), '/api/ai/parse')

    def test_every_operation_returns_same_shape(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply):
            for path in OPERATION_PATHS:
                with self.subTest(path=path):
                    response = self.post_json(path, {'prompt': 'How much water?'})
                    self.assertEqual(response.status_code, 200)
                    self.assertEqual(response['Content-Type'], 'application/json')
                    self.assertEqual(response.json(), {
                        'content': 'Drink water',
                        'tokensUsed': 42,
                        'model': 'gemini-2.5-flash',
                        'provider': 'gemini',
                    })

    def test_default_provider_when_omitted(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini, \
                patch.object(ClaudeProvider, 'generate', side_effect=claude_reply) as claude:
            response = self.post_json('/api/ai/tip', {'prompt': 'Tip?'})
        self.assertEqual(response.json()['provider'], 'gemini')
        gemini.assert_called_once_with('Tip?', None)
        claude.assert_not_called()

    def test_request_provider_overrides_default(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini, \
                patch.object(ClaudeProvider, 'generate', side_effect=claude_reply) as claude:
            response = self.post_json(
                '/api/ai/insights',
                {'prompt': 'Tip?', 'provider': 'claude', 'systemPrompt': 'Be kind'},
            )
        self.assertEqual(response.json()['provider'], 'claude')
        self.assertEqual(response.json()['tokensUsed'], 18)
        claude.assert_called_once_with('Tip?', 'Be kind')
        gemini.assert_not_called()

    @override_settings(DEFAULT_PROVIDER='claude')
    def test_configured_default_claude(self):
        with patch.object(ClaudeProvider, 'generate', side_effect=claude_reply) as claude:
            response = self.post_json('/api/ai/workout', {'prompt': 'Leg day'})
        self.assertEqual(response.status_code, 200)
        claude.assert_called_once()

    def test_parse_uses_builtin_system_prompt(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini:
            self.post_json('/api/ai/parse', {'prompt': 'Week 1 Day 1: squats 3x10'})
        gemini.assert_called_once_with('Week 1 Day 1: squats 3x10', PARSE_SYSTEM_PROMPT)

    def test_parse_system_prompt_shows_multi_day_example(self):
        self.assertIn('"name": "Week 1 Day 1 - Chest & Triceps"', PARSE_SYSTEM_PROMPT)
        self.assertIn('"name": "Week 1 Day 2 - Back & Biceps"', PARSE_SYSTEM_PROMPT)
        self.assertTrue(PARSE_SYSTEM_PROMPT.endswith('Include ALL days from ALL weeks.'))

    def test_parse_keeps_client_system_prompt(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini:
            self.post_json('/api/ai/parse', {'prompt': 'program', 'systemPrompt': 'Custom'})
        gemini.assert_called_once_with('program', 'Custom')

    def test_other_operations_have_no_builtin_system_prompt(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini:
            self.post_json('/api/ai/workout', {'prompt': 'Leg day'})
        gemini.assert_called_once_with('Leg day', None)


class ValidationTest(ProxyViewTestCase):
    def test_missing_or_empty_prompt_is_invalid(self):
        bodies = [{}, {'prompt': ''}, {'prompt': '', 'provider': 'claude'}, {'systemPrompt': 'x'}]
        with patch.object(GeminiProvider, 'generate') as gemini:
            for path in OPERATION_PATHS:
                for body in bodies:
                    with self.subTest(path=path, body=body):
                        message = self.assertError(self.post_json(path, body), 400, 'INVALID_REQUEST')
                        self.assertEqual(message, 'Prompt is required')
        gemini.assert_not_called()

    def test_empty_body_is_internal_error(self):
        with patch.object(GeminiProvider, 'generate') as gemini:
            response = self.client.post('/api/ai/tip', data='', content_type='application/json')
        self.assertError(response, 500, 'INTERNAL_ERROR')
        gemini.assert_not_called()

    def test_unknown_provider_is_invalid(self):
        response = self.post_json('/api/ai/tip', {'prompt': 'hi', 'provider': 'openai'})
        self.assertError(response, 400, 'INVALID_REQUEST')

    def test_provider_name_is_case_insensitive(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply) as gemini, \
                patch.object(ClaudeProvider, 'generate', side_effect=claude_reply) as claude:
            response = self.post_json('/api/ai/tip', {'prompt': 'hi', 'provider': 'Claude'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['provider'], 'claude')
        claude.assert_called_once_with('hi', None)
        gemini.assert_not_called()

    def test_non_string_optional_fields_are_invalid(self):
        bodies = [{'prompt': 'hi', 'systemPrompt': ['x']}, {'prompt': 'hi', 'model': 42}]
        with patch.object(GeminiProvider, 'generate') as gemini:
            for body in bodies:
                with self.subTest(body=body):
                    self.assertError(self.post_json('/api/ai/tip', body), 400, 'INVALID_REQUEST')
        gemini.assert_not_called()

    def test_malformed_json_is_internal_error(self):
        response = self.post_json('/api/ai/tip', '{not json')
        self.assertError(response, 500, 'INTERNAL_ERROR')


class MethodAndRoutingTest(ProxyViewTestCase):
    def test_non_post_verbs_are_rejected(self):
        for path in OPERATION_PATHS:
            with self.subTest(path=path, method='get'):
                self.assertError(self.client.get(path), 405, 'METHOD_NOT_ALLOWED')
            for method in ('put', 'patch', 'delete'):
                with self.subTest(path=path, method=method):
                    response = getattr(self.client, method)(
                        path, data=json.dumps({'prompt': 'hi'}), content_type='application/json'
                    )
                    self.assertError(response, 405, 'METHOD_NOT_ALLOWED')

    def test_unknown_path_is_not_found(self):
        message = self.assertError(self.post_json('/api/ai/unknown', {'prompt': 'hi'}), 404, 'NOT_FOUND')
        self.assertEqual(message, 'Endpoint not found')

    def test_trailing_slash_is_not_an_operation(self):
        self.assertError(self.post_json('/api/ai/tip/', {'prompt': 'hi'}), 404, 'NOT_FOUND')

    def test_health_get(self):
        response = self.client.get(reverse('proxy:health'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'status': 'ok', 'environment': 'test'})

    def test_health_post(self):
        response = self.client.post('/health')
        self.assertEqual(response.json(), {'status': 'ok', 'environment': 'test'})

    @override_settings(RATE_LIMIT_RPM=1)
    def test_health_get_skips_rate_limit(self):
        for _ in range(3):
            self.assertEqual(self.client.get('/health').status_code, 200)


class CorsTest(ProxyViewTestCase):
    def assertCors(self, response):
        self.assertEqual(response['Access-Control-Allow-Origin'], '*')
        self.assertEqual(response['Access-Control-Allow-Methods'], 'POST, OPTIONS')
        self.assertEqual(response['Access-Control-Allow-Headers'], 'Content-Type, X-Device-ID')

    def test_preflight_on_any_path(self):
        for path in OPERATION_PATHS + ['/health', '/anything/else']:
            with self.subTest(path=path):
                response = self.client.options(path)
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.content, b'')
                self.assertCors(response)

    def test_preflight_is_not_rate_limited(self):
        with self.settings(RATE_LIMIT_RPM=1):
            for _ in range(3):
                self.assertEqual(self.client.options('/api/ai/tip').status_code, 200)

    def test_success_and_error_responses_carry_cors_headers(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply):
            responses = [
                self.post_json('/api/ai/tip', {'prompt': 'hi'}),
                self.post_json('/api/ai/tip', {}),
                self.post_json('/api/ai/nope', {'prompt': 'hi'}),
                self.client.get('/api/ai/tip'),
                self.client.get('/health'),
            ]
        for response in responses:
            with self.subTest(status=response.status_code):
                self.assertCors(response)

    @override_settings(RATE_LIMIT_RPM=1)
    def test_rate_limited_response_carries_cors_headers(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply):
            self.post_json('/api/ai/tip', {'prompt': 'a'}, 'dev-1')
            response = self.post_json('/api/ai/tip', {'prompt': 'b'}, 'dev-1')
        self.assertError(response, 429, 'RATE_LIMITED')
        self.assertCors(response)

    def test_internal_error_response_carries_cors_headers(self):
        with patch.object(GeminiProvider, 'generate', side_effect=RuntimeError('boom')):
            response = self.post_json('/api/ai/tip', {'prompt': 'hi'})
        self.assertError(response, 500, 'INTERNAL_ERROR')
        self.assertCors(response)


class RateLimitTest(ProxyViewTestCase):
    @override_settings(RATE_LIMIT_RPM=2)
    def test_limit_per_device(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply):
            self.assertEqual(self.post_json('/api/ai/tip', {'prompt': 'a'}, 'dev-1').status_code, 200)
            self.assertEqual(self.post_json('/api/ai/tip', {'prompt': 'b'}, 'dev-1').status_code, 200)
            denied = self.post_json('/api/ai/tip', {'prompt': 'c'}, 'dev-1')
            other = self.post_json('/api/ai/tip', {'prompt': 'd'}, 'dev-2')

        message = self.assertError(denied, 429, 'RATE_LIMITED')
        self.assertRegex(message, r'^Rate limit exceeded\. Try again in \d+ seconds\.$')
        self.assertEqual(other.status_code, 200)

    @override_settings(RATE_LIMIT_RPM=1)
    def test_missing_device_id_shares_anonymous_bucket(self):
        with patch.object(GeminiProvider, 'generate', side_effect=gemini_reply):
            self.assertEqual(self.post_json('/api/ai/tip', {'prompt': 'a'}).status_code, 200)
            self.assertError(self.post_json('/api/ai/tip', {'prompt': 'b'}), 429, 'RATE_LIMITED')

    @override_settings(RATE_LIMIT_RPM=1)
    def test_rate_limit_applies_before_validation_and_routing(self):
        self.post_json('/api/ai/tip', {}, 'dev-1')
        self.assertError(self.post_json('/api/ai/unknown', {}, 'dev-1'), 429, 'RATE_LIMITED')

    @override_settings(RATE_LIMIT_RPM=1)
    def test_method_gate_applies_before_rate_limit(self):
        self.post_json('/api/ai/tip', {}, 'dev-1')
        response = self.client.get('/api/ai/tip', HTTP_X_DEVICE_ID='dev-1')
        self.assertError(response, 405, 'METHOD_NOT_ALLOWED')


class ProviderErrorTest(ProxyViewTestCase):
    @override_settings(GEMINI_API_KEY='')
    def test_missing_api_key_is_configuration_error(self):
        message = self.assertError(
            self.post_json('/api/ai/tip', {'prompt': 'hi'}), 500, 'CONFIGURATION_ERROR'
        )
        self.assertEqual(message, 'GEMINI_API_KEY not configured')

    def test_upstream_error(self):
        error = UpstreamError('gemini', 500, 'Gemini API error: 500 - backend error')
        with patch.object(GeminiProvider, 'generate', side_effect=error):
            message = self.assertError(
                self.post_json('/api/ai/tip', {'prompt': 'hi'}), 502, 'UPSTREAM_ERROR'
            )
        self.assertIn('500', message)

    def test_network_error(self):
        error = NetworkError('claude', 'Claude API unreachable: timed out')
        with patch.object(ClaudeProvider, 'generate', side_effect=error):
            response = self.post_json('/api/ai/tip', {'prompt': 'hi', 'provider': 'claude'})
        self.assertError(response, 503, 'NETWORK_ERROR')

    def test_quota_exceeded(self):
        error = QuotaExceededError('AI quota exceeded. Please try again later.')
        with patch('proxy.services.ai.router.AIRouter.dispatch', side_effect=error):
            response = self.post_json('/api/ai/tip', {'prompt': 'hi'})
        self.assertError(response, 429, 'QUOTA_EXCEEDED')

    def test_unexpected_exception_is_internal_error(self):
        with patch.object(GeminiProvider, 'generate', side_effect=RuntimeError('boom')):
            message = self.assertError(
                self.post_json('/api/ai/tip', {'prompt': 'hi'}), 500, 'INTERNAL_ERROR'
            )
        self.assertEqual(message, 'boom')

    def test_exception_without_message(self):
        with patch.object(GeminiProvider, 'generate', side_effect=RuntimeError()):
            message = self.assertError(
                self.post_json('/api/ai/tip', {'prompt': 'hi'}), 500, 'INTERNAL_ERROR'
            )
        self.assertEqual(message, 'Unknown error')

    def test_gemini_quota_falls_back_to_claude_end_to_end(self):
        error = UpstreamError('gemini', 429, 'Gemini API error: 429 - RESOURCE_EXHAUSTED')
        with patch.object(GeminiProvider, 'generate', side_effect=error), \
                patch.object(ClaudeProvider, 'generate', side_effect=claude_reply):
            response = self.post_json('/api/ai/tip', {'prompt': 'hi'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['model'], 'claude-3-haiku-20240307 (fallback)')
