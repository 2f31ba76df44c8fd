"""Provider registry: singleton map of provider name -> instance."""

from ghardaar.providers.base import DescriptionProvider

_providers: dict[str, DescriptionProvider] = {}


def get_provider(name: str) -> DescriptionProvider:
    """Get or create a provider instance by name."""
    if name in _providers:
        return _providers[name]

    # Lazy imports keep each SDK out of deployments that do not use it
    if name == "gemini":
        from ghardaar.providers.gemini import GeminiProvider
        _providers[name] = GeminiProvider()
    elif name == "openai":
        from ghardaar.providers.openai import OpenAIProvider
        _providers[name] = OpenAIProvider()
    elif name == "bedrock":
        from ghardaar.providers.bedrock import BedrockProvider
        _providers[name] = BedrockProvider()
    else:
        raise ValueError(f"Unknown provider: {name}")

    return _providers[name]


async def close_all_providers() -> None:
    """Gracefully shut down all provider connections."""
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
