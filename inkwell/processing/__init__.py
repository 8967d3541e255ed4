from .preprocess import preprocess
from .chunker import SEPARATORS, TextChunk, TextChunker, chunk_text

__all__ = ["preprocess", "SEPARATORS", "TextChunk", "TextChunker", "chunk_text"]
