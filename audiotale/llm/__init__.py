"""Provider-facing clients and text-understanding helpers.

This package defines HTTP clients, prompt libraries, response validation,
pacing, and caching. `character_analyzer` is imported directly by callers.
"""

from .cache import ResponseCache
from .http_client import ProviderError
from .openai_client import OpenAIChatClient, OpenAISpeechClient
from .prompts import PromptLibrary
from .rate_limiter import RateLimiter
from .sound_client import SoundGenerationClient

__all__ = [
    "OpenAIChatClient",
    "OpenAISpeechClient",
    "PromptLibrary",
    "ProviderError",
    "RateLimiter",
    "ResponseCache",
    "SoundGenerationClient",
]
