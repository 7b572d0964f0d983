"""Provider adapter classes."""

from webpilot.models.adapters.base import APIProviderAdapter, AsyncBaseAPIAdapter
from webpilot.models.adapters.openai import OpenAIChatAdapter
from webpilot.models.adapters.factory import ProviderAdapterFactory, build_provider

__all__ = [
    "APIProviderAdapter",
    "AsyncBaseAPIAdapter",
    "OpenAIChatAdapter",
    "ProviderAdapterFactory",
    "build_provider",
]
