import json
from typing import Dict, List

import aiohttp

from . import config
from .logging_config import logger


async def stream_ollama_chat(model: str, messages: List[Dict]):
    """
    Stream chat completion tokens from Ollama.
    Yields: {"type":"delta", "text": "..."}
    """
    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{config.OLLAMA_URL}/api/chat",
            json={"model": model, "messages": messages, "stream": True},
        ) as resp:
            resp.raise_for_status()
            async for line in resp.content:
                line = line.decode().strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed Ollama line", line=line[:100])
                    continue
                if data.get("error"):
                    raise RuntimeError(f"Ollama error: {data['error']}")
                content = (data.get("message") or {}).get("content")
                if content:
                    yield {"type": "delta", "text": content}
                if data.get("done"):
                    break


async def complete_ollama_chat(model: str, messages: List[Dict]) -> str:
    """Single non-streamed chat completion."""
    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{config.OLLAMA_URL}/api/chat",
            json={"model": model, "messages": messages, "stream": False},
        ) as resp:
            resp.raise_for_status()
            data = await resp.json()
    if data.get("error"):
        raise RuntimeError(f"Ollama error: {data['error']}")
    return (data.get("message") or {}).get("content", "")
