"""AI provider adapters and the router that dispatches to them."""

from .router import AIRouter
from .schemas import AIRequest, AIResponse, OperationType, ProviderName

__all__ = ['AIRouter', 'AIRequest', 'AIResponse', 'OperationType', 'ProviderName']
