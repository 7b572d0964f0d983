"""Factory for creating provider adapters from model profiles."""

from webpilot.agents.exceptions import ConfigurationError
from webpilot.models.adapters.openai import DEFAULT_BASE_URLS, OpenAIChatAdapter
from webpilot.models.profile import ModelProfile

OPENAI_COMPATIBLE_PROVIDERS = tuple(DEFAULT_BASE_URLS)


class ProviderAdapterFactory:
    """Factory to create the right adapter based on provider"""

    @staticmethod
    def create_adapter(profile: ModelProfile, request_timeout: float = 90.0) -> OpenAIChatAdapter:
        provider = profile.provider.strip().lower()
        if provider not in OPENAI_COMPATIBLE_PROVIDERS and not profile.base_url:
            raise ConfigurationError(
                f"unsupported provider {profile.provider!r}; set base_url for OpenAI-compatible endpoints",
                config_field="provider",
                suggestion=f"Use one of {', '.join(OPENAI_COMPATIBLE_PROVIDERS)} or configure base_url.",
            )
        return OpenAIChatAdapter(
            model_name=profile.model,
            api_key=profile.api_key,
            base_url=profile.base_url or None,
            provider=provider,
            max_tokens=profile.max_tokens or None,
            request_timeout=request_timeout,
        )


def build_provider(profile: ModelProfile, request_timeout: float = 90.0) -> OpenAIChatAdapter:
    return ProviderAdapterFactory.create_adapter(profile, request_timeout=request_timeout)
