"""Abstract base class for AI provider implementations."""

import abc
from typing import Optional

from proxy.services.base import ServiceNotConfigured

from .schemas import AIResponse

#: Output budget shared by every adapter; clients cannot override it.
MAX_OUTPUT_TOKENS = 2048


class BaseProvider(abc.ABC):
    """Interface that every provider adapter must implement."""

    #: String identifier matching a :class:`~.schemas.ProviderName` value.
    name: str = ''

    #: Model used when neither settings nor the request name one.
    default_model: str = ''

    #: Settings key holding the API key, used in configuration errors.
    api_key_setting: str = ''

    #: Settings key holding the configured model name.
    model_setting: str = ''

    def __init__(self, api_key: Optional[str], model: Optional[str] = None) -> None:
        self._api_key = api_key
        self.model = model or self.default_model

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise ServiceNotConfigured(f'{self.api_key_setting} not configured')
        return self._api_key

    @abc.abstractmethod
    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        """Send *prompt* to the provider and return a normalized :class:`AIResponse`.

        Args:
            prompt: The user prompt, sent as the only user turn.
            system_prompt: Optional system instruction, sent in the provider's
                dedicated system field rather than merged into the prompt.

        Raises:
            :class:`~proxy.services.base.ServiceNotConfigured`: No API key.
            :class:`~proxy.services.base.UpstreamError`: Non-success status.
            :class:`~proxy.services.base.NetworkError`: Provider unreachable.
        """
