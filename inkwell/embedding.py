import asyncio
from typing import List

import numpy as np

from . import config
from .errors import EmbeddingServiceError
from .logging_config import logger

_model = None


def preload_model():
    """Preload the embedding model on startup to avoid first-request delay."""
    global _model
    if _model is None:
        from sentence_transformers import SentenceTransformer
        logger.info("Loading embedding model", model=config.EMBED_MODEL)

        # Explicit tokenizer settings avoid a FutureWarning
        _model = SentenceTransformer(
            config.EMBED_MODEL,
            tokenizer_kwargs={'clean_up_tokenization_spaces': False}
        )

        # Warm up with a test embedding
        _model.encode(["test"], normalize_embeddings=True, show_progress_bar=False)
        logger.info("Embedding model loaded", model=config.EMBED_MODEL)
    return _model


def get_model():
    global _model
    if _model is None:
        preload_model()
    return _model


def embed_texts(texts: List[str]) -> List[List[float]]:
    """Encode texts synchronously; vectors are L2-normalized."""
    model = get_model()
    vecs = model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
    if isinstance(vecs, np.ndarray):
        return vecs.tolist()
    return [list(v) for v in vecs]


async def embed_batch(texts: List[str]) -> List[List[float]]:
    """
    Embed several texts in one model call.

    Raises:
        EmbeddingServiceError: If the model fails or returns vectors of the wrong size
    """
    if not texts:
        return []
    try:
        vectors = await asyncio.to_thread(embed_texts, texts)
    except Exception as e:
        logger.error("Embedding failed", batch_size=len(texts), error=str(e))
        raise EmbeddingServiceError(f"Embedding failed: {e}") from e

    if len(vectors) != len(texts):
        raise EmbeddingServiceError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
    for vec in vectors:
        if len(vec) != config.EMBED_DIM:
            raise EmbeddingServiceError(
                f"Embedding dimension {len(vec)} does not match EMBED_DIM={config.EMBED_DIM}"
            )
    return vectors


async def embed(text: str) -> List[float]:
    """Embed a single text."""
    vectors = await embed_batch([text])
    return vectors[0]
