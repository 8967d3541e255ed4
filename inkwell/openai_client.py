from typing import AsyncGenerator, Dict, List

from openai import AsyncOpenAI

from . import config

_client = None


def get_client() -> AsyncOpenAI:
    """Create the OpenAI client on first use (server-side key only)."""
    global _client
    if _client is None:
        if not config.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not set. Put it in env or .env (server-side only).")
        _client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
    return _client


async def stream_openai_chat(model: str, messages: List[Dict]) -> AsyncGenerator[str, None]:
    """Yield text deltas of a streamed chat completion."""
    stream = await get_client().chat.completions.create(
        model=model,
        messages=messages,
        temperature=config.GENERATION_TEMPERATURE,
        stream=True,
    )
    async for chunk in stream:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta.content or ""
        if delta:
            yield delta


async def complete_openai_chat(model: str, messages: List[Dict]) -> str:
    response = await get_client().chat.completions.create(
        model=model,
        messages=messages,
        temperature=config.GENERATION_TEMPERATURE,
    )
    return response.choices[0].message.content or ""
