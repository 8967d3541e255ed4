"""
Prompt assembly.
Picks the template for the retrieval outcome and fills in history and sources.
"""
from typing import Dict, List, Optional, Sequence, Union

from .. import config
from ..schemas import ChatTurn, Source
from .retrieval_service import RetrievalMode

SOURCE_SEPARATOR = "\n\n---\n\n"

GROUNDED_TEMPLATE = """You are a strict document-based Q&A assistant. You MUST follow these rules:

CRITICAL RULES:
1. ONLY answer using information explicitly stated in the provided document sources
2. Do NOT use any external knowledge, prior training, or assumptions
3. ALWAYS cite your sources using the format [1], [2], etc. when referencing information
4. Each claim or piece of information MUST have a citation
5. If the answer is not found in the sources, say: "I could not find information about this in your documents."
6. If only partial information is available, cite what you found and note what's missing

CITATION FORMAT:
- Use [1], [2], [3] etc. to reference sources inline
- Place citations immediately after the relevant statement
- You can cite multiple sources for one statement like [1][2]

{history}DOCUMENT SOURCES:
{context}

USER QUESTION: {question}

Provide an answer with inline citations [1], [2], etc. based STRICTLY on the sources above:"""

NO_MATCH_TEMPLATE = """You are a document-based Q&A assistant. The user has uploaded documents, but no relevant passages were found matching their question.

RESPONSE GUIDELINES:
- Tell the user that no relevant information was found in their documents for this specific question
- Suggest they rephrase their question or check whether the topic is covered in their uploaded documents
- Do NOT try to answer from external knowledge

{history}USER QUESTION: {question}

Response:"""

NO_DOCUMENTS_TEMPLATE = """You are a document-based Q&A assistant. The user has not uploaded any documents yet.

RESPONSE:
- Tell the user they need to upload documents first
- Explain that you can only answer questions based on their uploaded documents
- Do NOT provide any answer to their question from external knowledge

{history}USER QUESTION: {question}

Response:"""

TEMPLATES = {
    RetrievalMode.GROUNDED: GROUNDED_TEMPLATE,
    RetrievalMode.NO_RELEVANT_MATCH: NO_MATCH_TEMPLATE,
    RetrievalMode.NO_DOCUMENTS: NO_DOCUMENTS_TEMPLATE,
}

Turn = Union[ChatTurn, Dict[str, str]]


def select_mode(has_documents: bool, sources: Sequence[Source]) -> RetrievalMode:
    """Exactly one template applies: sources win, then documents, then nothing."""
    if sources:
        return RetrievalMode.GROUNDED
    if has_documents:
        return RetrievalMode.NO_RELEVANT_MATCH
    return RetrievalMode.NO_DOCUMENTS


def render_history(history: Optional[Sequence[Turn]], max_turns: int = None) -> str:
    """`User: ...` / `Assistant: ...` lines for the last `max_turns` turns."""
    max_turns = config.HISTORY_TURNS if max_turns is None else max_turns
    if not history or max_turns <= 0:
        return ""
    lines = []
    for turn in list(history)[-max_turns:]:
        role = turn["role"] if isinstance(turn, dict) else turn.role
        content = turn["content"] if isinstance(turn, dict) else turn.content
        lines.append(f"{'User' if role == 'user' else 'Assistant'}: {content}")
    return "\n".join(lines)


def render_context(sources: Sequence[Source]) -> str:
    """Numbered source blocks in citation order."""
    ordered = sorted(sources, key=lambda s: s.number)
    return SOURCE_SEPARATOR.join(
        f"[Source {s.number}] ({s.filename}):\n{s.content}" for s in ordered
    )


def build_prompt(
    question: str,
    sources: Sequence[Source],
    has_documents: bool,
    history: Optional[Sequence[Turn]] = None,
) -> str:
    """
    Render the full generation prompt.

    Args:
        question: The user's question
        sources: Numbered sources (may be empty)
        has_documents: Whether the user has any ready document
        history: Earlier turns, oldest first

    Returns:
        Prompt text for the generation model
    """
    mode = select_mode(has_documents, sources)
    history_block = render_history(history)
    if history_block:
        history_block = f"Previous conversation:\n{history_block}\n\n"

    return TEMPLATES[mode].format(
        history=history_block,
        context=render_context(sources),
        question=question,
    )
