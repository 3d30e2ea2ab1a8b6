"""Request / response dataclasses for the AI proxy."""

import enum
from dataclasses import dataclass
from typing import Any, Optional

from proxy.services.base import InvalidRequest


class OperationType(str, enum.Enum):
    INSIGHT = 'insight'
    WORKOUT_GENERATION = 'workoutGeneration'
    TIP = 'tip'
    PARSE = 'parse'


class ProviderName(str, enum.Enum):
    GEMINI = 'gemini'
    CLAUDE = 'claude'

    @classmethod
    def parse(cls, value: Any) -> 'ProviderName':
        """Return the member for *value* or raise :class:`InvalidRequest`."""
        try:
            return cls(value.lower() if isinstance(value, str) else value)
        except ValueError:
            choices = ', '.join(member.value for member in cls)
            raise InvalidRequest(f'Unknown provider {value!r}; expected one of: {choices}') from None


@dataclass
class AIRequest:
    """Normalized, provider-agnostic request built from a client JSON body."""

    operation_type: OperationType
    prompt: str
    system_prompt: Optional[str] = None
    provider: Optional[ProviderName] = None
    model: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any, operation_type: OperationType) -> 'AIRequest':
        """Build an :class:`AIRequest` from a decoded JSON body.

        Accepts the wire keys ``prompt``, ``systemPrompt``, ``provider`` and
        ``model``. Unknown keys (such as the client's own ``type`` tag) are
        ignored.

        Raises:
            :class:`~proxy.services.base.InvalidRequest`: When ``prompt`` is
                missing or empty, ``systemPrompt`` or ``model`` is not a
                string, or ``provider`` names no known provider.
        """
        if not isinstance(payload, dict):
            raise InvalidRequest('Prompt is required')

        prompt = payload.get('prompt')
        if not isinstance(prompt, str) or not prompt:
            raise InvalidRequest('Prompt is required')

        system_prompt = payload.get('systemPrompt')
        if system_prompt is not None and not isinstance(system_prompt, str):
            raise InvalidRequest('systemPrompt must be a string')

        model = payload.get('model')
        if model is not None and not isinstance(model, str):
            raise InvalidRequest('model must be a string')

        provider = payload.get('provider')
        return cls(
            operation_type=operation_type,
            prompt=prompt,
            system_prompt=system_prompt or None,
            provider=ProviderName.parse(provider) if provider else None,
            model=model or None,
        )


@dataclass
class AIResponse:
    """Structured response returned to proxy clients."""

    content: str
    tokens_used: Optional[int]
    model: str
    provider: str

    def to_dict(self) -> dict:
        return {
            'content': self.content,
            'tokensUsed': self.tokens_used,
            'model': self.model,
            'provider': self.provider,
        }


def error_payload(code: str, message: str) -> dict:
    """Return the ``{"error": {"code", "message"}}`` envelope."""
    return {'error': {'code': code, 'message': message}}
