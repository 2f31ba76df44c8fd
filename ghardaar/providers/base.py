"""Abstract base for listing-description providers."""

from abc import ABC, abstractmethod


class DescriptionProvider(ABC):
    """Base class for generative text providers."""

    #: Settings field that must be non-empty for this provider to run
    required_setting: str = ""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Send a single prompt and return the generated text.

        Raises:
            HTTPException: 502/504 when the upstream call fails.
        """
        ...

    def is_configured(self) -> bool:
        from ghardaar.config.settings import get_settings

        if not self.required_setting:
            return True
        return bool(getattr(get_settings(), self.required_setting, ""))

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass
