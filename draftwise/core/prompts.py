"""Prompt templates for chat, document chat, document agent and full-document rewrite."""

from enum import Enum

from draftwise.core.schemas_chat import ChatMode, ChatRole, PromptMessage, RetrievedChunk

NO_CONTEXT_TEXT = "No relevant context found in your documents."


class PromptSelectionError(ValueError):
    """No template fits the requested mode and scope."""


class PromptTemplate(str, Enum):
    PROJECT_CHAT = "project_chat"
    DOCUMENT_CHAT = "document_chat"
    DOCUMENT_AGENT = "document_agent"
    DOCUMENT_REWRITE = "document_rewrite"


def select_template(mode: ChatMode, has_document_scope: bool, full_rewrite: bool = False) -> PromptTemplate:
    """
    Pick the template for a turn.

    Args:
        mode: chat or agent
        has_document_scope: Whether the turn targets a single document
        full_rewrite: Agent mode only; rewrite the whole document instead of proposing one edit

    Raises:
        PromptSelectionError: Agent mode without a document
    """
    if mode == ChatMode.AGENT:
        if not has_document_scope:
            raise PromptSelectionError("Agent mode requires a document.")
        return PromptTemplate.DOCUMENT_REWRITE if full_rewrite else PromptTemplate.DOCUMENT_AGENT

    if has_document_scope:
        return PromptTemplate.DOCUMENT_CHAT
    return PromptTemplate.PROJECT_CHAT


# =============================================================================
# System prompts
# =============================================================================

PROJECT_CHAT_SYSTEM = """You are a helpful AI assistant with access to the user's document library. Answer questions based on the provided context from their documents.

**Instructions:**
1. Use the provided context chunks to answer the user's question accurately.
2. If the context doesn't contain enough information, say so clearly.
3. Cite the documents you rely on by their source label (e.g., "According to your document about...").
4. Be conversational but precise.
5. If no context is provided, tell the user you don't have access to relevant documents for this query."""

DOCUMENT_CHAT_SYSTEM = """You are an expert document assistant. Analyze the user's request about their document and give helpful, conversational answers.

**INSTRUCTIONS:**
1. Work out whether the user wants analysis, editing suggestions, or document insights.
2. The provided context chunks all come from the document being discussed.
3. For editing requests, describe the changes you would make and why, with before/after examples. Do not return structured output.
4. For analysis requests, highlight key points and insights.
5. Reference the document content when relevant. Be conversational but professional."""

DOCUMENT_AGENT_SYSTEM = """You are an expert document editor AI agent. Analyze the user's request and answer with a precise, structured response.

**CRITICAL INSTRUCTIONS:**
1. The provided context chunks are snippets of the document relevant to the request. Base your answer ONLY on them.
2. Respond with a single valid JSON object and nothing else.
3. The object has exactly one key, "analysis" or "suggestion".
   * "analysis": a string answering a question about the text.
   * "suggestion": an object with "change_reason" (why), "original_text" (the EXACT snippet from the context to change) and "suggested_text" (its replacement).

Example:
{"suggestion": {"change_reason": "More formal opening.", "original_text": "The report is about our Q2 numbers.", "suggested_text": "This report analyzes second-quarter financial performance."}}"""

DOCUMENT_REWRITE_SYSTEM = """You are a world-class document editor AI. Your sole function is to rewrite an entire HTML document according to the user's instruction and return ONLY the raw, modified HTML.

**CRITICAL DIRECTIVES:**
1. Read the whole document from start to finish before changing anything.
2. Apply the instruction exhaustively across the ENTIRE document. If asked to fill placeholders, fill every one. If asked to change tone, change it everywhere.
3. Preserve the original HTML element structure (<p>, <h1>, <ul>, ...). Only add or modify tags when the request requires it.
4. Never omit or summarize content that was not meant to change.
5. Return ONLY the complete modified HTML. No explanations, no apologies, no markdown fences. Start with the first tag and end with the last closing tag."""


# =============================================================================
# Builders
# =============================================================================


def format_context(chunks: list[RetrievedChunk], label: str = "CONTEXT") -> str:
    """Numbered, source-labelled context block, or the no-context notice."""
    if not chunks:
        return NO_CONTEXT_TEXT
    return "\n\n".join(f"[{label} {i}]:\n{chunk.render()}" for i, chunk in enumerate(chunks, start=1))


def _history_messages(history: list[dict[str, str]]) -> list[PromptMessage]:
    return [PromptMessage(role=ChatRole(h["role"]), content=h["content"]) for h in history]


def build_project_chat_prompt(
    chunks: list[RetrievedChunk],
    history: list[dict[str, str]],
    user_query: str,
    project_name: str | None = None,
    custom_instructions: str | None = None,
) -> list[PromptMessage]:
    parts = []
    if project_name:
        parts.append(f"PROJECT: {project_name}")
    if custom_instructions:
        parts.append(f"CUSTOM INSTRUCTIONS:\n{custom_instructions}")
    parts.append(f"CONTEXT FROM DOCUMENTS:\n---\n{format_context(chunks)}\n---")
    parts.append(f"USER QUERY: {user_query}")

    return [
        PromptMessage(role=ChatRole.SYSTEM, content=PROJECT_CHAT_SYSTEM),
        *_history_messages(history),
        PromptMessage(role=ChatRole.USER, content="\n\n".join(parts)),
    ]


def _document_prompt(
    system: str,
    chunks: list[RetrievedChunk],
    history: list[dict[str, str]],
    user_query: str,
    custom_instructions: str | None,
) -> list[PromptMessage]:
    user_content = (
        f"CONTEXT FROM DOCUMENT:\n---\n{format_context(chunks, 'CONTEXT CHUNK')}\n---\n\n"
        f"USER QUERY: {user_query}"
    )
    if custom_instructions:
        user_content = f"CUSTOM INSTRUCTIONS:\n{custom_instructions}\n\n{user_content}"

    return [
        PromptMessage(role=ChatRole.SYSTEM, content=system),
        *_history_messages(history),
        PromptMessage(role=ChatRole.USER, content=user_content),
    ]


def build_document_chat_prompt(
    chunks: list[RetrievedChunk],
    history: list[dict[str, str]],
    user_query: str,
    custom_instructions: str | None = None,
) -> list[PromptMessage]:
    return _document_prompt(DOCUMENT_CHAT_SYSTEM, chunks, history, user_query, custom_instructions)


def build_document_agent_prompt(
    chunks: list[RetrievedChunk],
    history: list[dict[str, str]],
    user_query: str,
    custom_instructions: str | None = None,
) -> list[PromptMessage]:
    return _document_prompt(DOCUMENT_AGENT_SYSTEM, chunks, history, user_query, custom_instructions)


def build_rewrite_prompt(
    original_html: str,
    user_query: str,
    custom_instructions: str | None = None,
) -> list[PromptMessage]:
    """Full-document rewrite: no retrieval, no history."""
    user_content = f'USER INSTRUCTION: "{user_query}"\n\n'
    if custom_instructions:
        user_content += f"PROJECT INSTRUCTIONS:\n{custom_instructions}\n\n"
    user_content += (
        f"---START OF ORIGINAL DOCUMENT HTML---\n{original_html}\n---END OF ORIGINAL DOCUMENT HTML---"
    )

    return [
        PromptMessage(role=ChatRole.SYSTEM, content=DOCUMENT_REWRITE_SYSTEM),
        PromptMessage(role=ChatRole.USER, content=user_content),
    ]


def assemble(
    template: PromptTemplate,
    chunks: list[RetrievedChunk],
    history: list[dict[str, str]],
    user_query: str,
    custom_instructions: str | None = None,
    project_name: str | None = None,
    document_html: str | None = None,
) -> list[PromptMessage]:
    """
    Build the message sequence for a selected template.

    History (oldest first) sits between the system message and the final user
    turn, except for DOCUMENT_REWRITE which takes neither history nor chunks.
    """
    if template == PromptTemplate.PROJECT_CHAT:
        return build_project_chat_prompt(chunks, history, user_query, project_name, custom_instructions)
    if template == PromptTemplate.DOCUMENT_CHAT:
        return build_document_chat_prompt(chunks, history, user_query, custom_instructions)
    if template == PromptTemplate.DOCUMENT_AGENT:
        return build_document_agent_prompt(chunks, history, user_query, custom_instructions)
    if document_html is None:
        raise PromptSelectionError("Full-document rewrite requires the document markup.")
    return build_rewrite_prompt(document_html, user_query, custom_instructions)
