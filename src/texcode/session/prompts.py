from __future__ import annotations

from typing import Any, Dict, List, Sequence

from texcode.llm.models import ChatMessage, Role
from texcode.patch import (
    DEFAULT_DOCUMENT_LANGUAGE,
    DEFAULT_FENCE_TAG,
    DOCUMENT_SYSTEM_INSTRUCTION,
    LATEX_DIFF_SYSTEM_INSTRUCTION,
    number_lines,
)
from texcode.settings import SessionSettings

DEFAULT_PERSONA = """You are a LaTeX expert assistant helping the user write and edit a LaTeX document. You know LaTeX syntax, commands and packages, mathematical typesetting with amsmath, amsfonts and amssymb, document structure, figures, tables, cross-references, citations and BibTeX.

Be conversational: explain briefly what you change and why. Mention any package that has to be added to the preamble. When the user only asks a question, answer it without editing the document."""

EMPTY_DOCUMENT_MARKER = "(the document is empty)"


def build_system_prompt(lines: Sequence[str], settings: SessionSettings) -> str:
    diff_instruction = LATEX_DIFF_SYSTEM_INSTRUCTION
    doc_instruction = DOCUMENT_SYSTEM_INSTRUCTION
    if settings.document_language != DEFAULT_DOCUMENT_LANGUAGE:
        doc_instruction = doc_instruction.replace(
            "```latex\n", f"```{settings.document_language}\n"
        ).replace("`latex` block", f"`{settings.document_language}` block")
    if settings.patch_fence != DEFAULT_FENCE_TAG:
        diff_instruction = diff_instruction.replace(DEFAULT_FENCE_TAG, settings.patch_fence)
        doc_instruction = doc_instruction.replace(DEFAULT_FENCE_TAG, settings.patch_fence)

    document = number_lines(lines) if lines else EMPTY_DOCUMENT_MARKER

    parts = [
        settings.system_prompt or DEFAULT_PERSONA,
        diff_instruction,
        doc_instruction,
        "# Current document\n\n" + document,
    ]
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


def build_messages(
    lines: Sequence[str],
    history: Sequence[ChatMessage],
    instruction: str,
    settings: SessionSettings,
) -> List[Dict[str, Any]]:
    """System prompt with the numbered document, recent history, then the new instruction."""
    messages: List[Dict[str, Any]] = [
        {"role": Role.SYSTEM.value, "content": build_system_prompt(lines, settings)}
    ]
    if settings.prompt_history > 0:
        for msg in list(history)[-settings.prompt_history :]:
            messages.append(msg.to_llm_dict())
    messages.append({"role": Role.USER.value, "content": instruction})
    return messages
