"""
Prompt builder for answer synthesis.

Builds the system and user prompts from packed context snippets and
validates the strict JSON reply the synthesizer must return.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.exceptions import SynthesisError
from ..utils.retry import parse_json_with_retry

logger = logging.getLogger(__name__)

NOT_ENOUGH_CONTEXT = "Not enough context"

SYSTEM_PROMPT = (
    "You are a personal memory assistant. Answer ONLY using the provided snippets. "
    'If insufficient, return JSON: {"answer":"Not enough context","citations":[],"confidence":0}. '
    'Always return strict JSON: {"answer": string, "citations": '
    '[{"entryId":string,"start":number,"end":number}], "confidence": number}.'
)

REPLY_SCHEMA = """{
  "answer": "string - your response based on the context",
  "citations": [
    {
      "entryId": "string - ID of the source entry",
      "start": "number - start character offset in the entry",
      "end": "number - end character offset in the entry"
    }
  ],
  "confidence": "number - confidence score between 0 and 1"
}"""

TONE_PREFIXES = {
    "direct": "Answer directly: ",
    "neutral": "Please answer: ",
}


@dataclass(frozen=True)
class ContextSnippet:
    """A packed snippet rendered into the prompt, with entry-relative offsets."""
    entry_id: str
    start: int
    end: int
    text: str
    score: float
    occurred_at: Optional[datetime] = None
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class QAPrompt:
    """System and user prompt pair plus the reply schema shown to the model."""
    system: str
    user: str
    json_schema: str = REPLY_SCHEMA

    def to_messages(self) -> List[Dict[str, str]]:
        """Chat-style message list."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


@dataclass
class SynthesisReply:
    """
    Validated synthesizer reply.

    Attributes:
        answer: Answer prose
        citations: (entry_id, start, end) triples as returned by the model
        confidence: Model-reported confidence in [0, 1]
    """
    answer: str
    citations: List[Tuple[str, int, int]] = field(default_factory=list)
    confidence: float = 0.0


def build_context_blocks(snippets: Sequence[ContextSnippet]) -> str:
    """
    Render numbered context blocks.

    Format of each block:
        N. Entry <id> (<YYYY-MM-DD>) [tag, tag]:
        "<text>"
    """
    blocks = []
    for index, snippet in enumerate(snippets, start=1):
        header = _block_header(index, snippet.entry_id, snippet.occurred_at, snippet.tags)
        blocks.append(f'{header}"{snippet.text}"')
    return "\n\n".join(blocks)


def block_frame(
    index: int,
    entry_id: str,
    occurred_at: Optional[datetime] = None,
    tags: Sequence[str] = (),
) -> str:
    """
    Everything build_context_blocks adds around a snippet's text.

    Used to charge the header and quotes of a block against the context
    budget before the snippet text is packed.
    """
    return _block_header(index, entry_id, occurred_at, tags) + '""'


def _block_header(
    index: int,
    entry_id: str,
    occurred_at: Optional[datetime],
    tags: Sequence[str],
) -> str:
    date = occurred_at.date().isoformat() if occurred_at else "unknown date"
    tag_list = f" [{', '.join(tags)}]" if tags else ""
    return f"{index}. Entry {entry_id} ({date}){tag_list}:\n"


def build_qa_prompt(snippets: str, question: str, tone: str = "neutral") -> QAPrompt:
    """
    Build the QA prompt.

    Args:
        snippets: Rendered context blocks
        question: User question
        tone: "direct" or "neutral"

    Returns:
        QAPrompt
    """
    if tone not in TONE_PREFIXES:
        raise ValueError(f"Unknown tone: {tone}")
    user = f"{TONE_PREFIXES[tone]}{question}\n\nContext:\n{snippets}"
    return QAPrompt(system=SYSTEM_PROMPT, user=user)


def build_empty_context_prompt(question: str) -> QAPrompt:
    """Prompt used when no context survived retrieval."""
    user = f"{TONE_PREFIXES['neutral']}{question}\n\nContext: No relevant information found."
    return QAPrompt(system=SYSTEM_PROMPT, user=user)


def parse_synthesis_reply(content: str) -> SynthesisReply:
    """
    Parse and validate a synthesizer reply.

    Raises:
        SynthesisError: If the reply is not a JSON object of the required shape
    """
    success, data, parse_errors = parse_json_with_retry(content, extract_embedded=True)
    if not success:
        raise SynthesisError("Synthesizer reply is not valid JSON", parse_errors)

    errors = _validate_reply(data)
    if errors:
        logger.warning(f"Synthesizer reply failed validation: {errors}")
        raise SynthesisError("Synthesizer reply has an invalid shape", errors)

    return SynthesisReply(
        answer=data["answer"],
        citations=[(c["entryId"], int(c["start"]), int(c["end"])) for c in data["citations"]],
        confidence=min(max(float(data["confidence"]), 0.0), 1.0),
    )


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int)


def _validate_reply(data: Dict[str, Any]) -> List[str]:
    errors = []

    if not isinstance(data.get("answer"), str):
        errors.append("answer must be a string")

    if not _is_number(data.get("confidence")):
        errors.append("confidence must be a number")

    citations = data.get("citations")
    if not isinstance(citations, list):
        errors.append("citations must be a list")
        return errors

    for i, citation in enumerate(citations):
        if not isinstance(citation, dict):
            errors.append(f"citations[{i}] must be an object")
            continue
        if not isinstance(citation.get("entryId"), str):
            errors.append(f"citations[{i}].entryId must be a string")
        for key in ("start", "end"):
            if not _is_number(citation.get(key)):
                errors.append(f"citations[{i}].{key} must be a number")

    return errors
