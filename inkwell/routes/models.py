"""
Generation model listing.
"""
from fastapi import APIRouter

from .. import config
from ..services.model_service import get_available_models, resolve_model

router = APIRouter(prefix="/api", tags=["models"])


@router.get("/models")
async def list_available_models():
    """
    Models a chat request may name, plus the one used when it names none.

    Example response:
    {
        "providers": {"openai": ["gpt-4o-mini"], "ollama": ["qwen2.5:7b"]},
        "default": "openai:gpt-4o-mini"
    }
    """
    provider, model_name = resolve_model(config.DEFAULT_MODEL)
    return {"providers": get_available_models(), "default": f"{provider}:{model_name}"}
