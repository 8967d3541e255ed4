"""
Model service for LLM provider management.
Handles model resolution, listing available models and text generation.
"""
from typing import AsyncGenerator, Dict, List, Tuple

from .. import config
from ..errors import GenerationServiceError
from ..logging_config import logger
from ..ollama_client import complete_ollama_chat, stream_ollama_chat
from ..openai_client import complete_openai_chat, stream_openai_chat

# Model registry
AVAILABLE_MODELS = {
    "openai": [config.OPENAI_MODEL],
    "ollama": [config.OLLAMA_MODEL],
}


def get_available_models() -> Dict[str, List[str]]:
    """
    Get all available models grouped by provider.

    Returns:
        Dictionary with provider names as keys and model lists as values
    """
    return AVAILABLE_MODELS


def resolve_model(model_string: str = None) -> Tuple[str, str]:
    """
    Resolve a model string to provider and model name.

    Args:
        model_string: Format "provider:model_name" (e.g., "openai:gpt-4o-mini")
                     or None for the configured default

    Returns:
        Tuple of (provider, model_name)

    Examples:
        >>> resolve_model("ollama:qwen2.5:7b")
        ("ollama", "qwen2.5:7b")
    """
    model_string = model_string or config.DEFAULT_MODEL

    for provider in AVAILABLE_MODELS:
        prefix = f"{provider}:"
        if model_string.startswith(prefix):
            return provider, model_string[len(prefix):]

    # Fallback to default if format is unexpected
    logger.warning("Unknown model string, using default", model=model_string)
    return "openai", config.OPENAI_MODEL


def _messages(prompt: str) -> List[Dict]:
    return [{"role": "user", "content": prompt}]


async def generate(prompt: str, model: str = None) -> str:
    """
    Generate a complete answer for a prompt.

    Raises:
        GenerationServiceError: On any upstream failure
    """
    provider, model_name = resolve_model(model)
    logger.info("Generating answer", provider=provider, model=model_name, prompt_length=len(prompt))
    try:
        if provider == "ollama":
            return await complete_ollama_chat(model_name, _messages(prompt))
        return await complete_openai_chat(model_name, _messages(prompt))
    except Exception as e:
        logger.error("Generation failed", provider=provider, model=model_name, error=str(e))
        raise GenerationServiceError(f"Generation failed: {e}") from e


async def generate_stream(prompt: str, model: str = None) -> AsyncGenerator[str, None]:
    """
    Stream answer fragments for a prompt, in order.

    Raises:
        GenerationServiceError: On any upstream failure, including mid-stream
    """
    provider, model_name = resolve_model(model)
    logger.info("Streaming answer", provider=provider, model=model_name, prompt_length=len(prompt))
    try:
        if provider == "ollama":
            async for event in stream_ollama_chat(model_name, _messages(prompt)):
                if event.get("type") == "delta":
                    yield event["text"]
        else:
            async for delta in stream_openai_chat(model_name, _messages(prompt)):
                yield delta
    except Exception as e:
        logger.error("Generation stream failed", provider=provider, model=model_name, error=str(e))
        raise GenerationServiceError(f"Generation failed: {e}") from e
