"""Auto-capture of noteworthy conversation content into the memory index"""

import re
import time
from uuid import UUID

from pydantic import BaseModel, Field

from ..enums import CaptureCategory
from ..logging import LogEventType, get_logger
from .persistence import MessagePersistence

logger = get_logger(__name__)

MIN_CAPTURE_LENGTH = 15
MAX_CAPTURE_LENGTH = 2000
SUMMARY_CHARS = 500

# Checked in order; the first match decides the category
MEMORY_TRIGGERS: list[tuple[re.Pattern, CaptureCategory]] = [
    (re.compile(r"lembra|remember|guarda|anota|salva", re.I), CaptureCategory.GENERAL),
    (
        re.compile(r"decid[io]|decidimos|resolv[io]|vamos\s+com", re.I),
        CaptureCategory.DECISION,
    ),
    (re.compile(r"escolh[io]|optei|optamos", re.I), CaptureCategory.DECISION),
    (
        re.compile(r"prefiro|prefer[eo]|gosto\s+de|n[aã]o\s+gosto", re.I),
        CaptureCategory.PREFERENCE,
    ),
    (re.compile(r"odeio|detesto|evit[oa]", re.I), CaptureCategory.PREFERENCE),
    # phone number, e-mail
    (re.compile(r"\+\d{10,}"), CaptureCategory.CONTACT),
    (re.compile(r"[\w.-]+@[\w.-]+\.\w+"), CaptureCategory.CONTACT),
    (re.compile(r"trabalha\s+(na|no|em)", re.I), CaptureCategory.FACT),
    (
        re.compile(r"é\s+(diretor|gerente|ceo|cto|cfo|cmo|cpo)", re.I),
        CaptureCategory.FACT,
    ),
    (re.compile(r"cuida\s+d[aoe]", re.I), CaptureCategory.FACT),
    (re.compile(r"é\s+responsável\s+por", re.I), CaptureCategory.FACT),
    (re.compile(r"precisa(mos)?\s+fazer", re.I), CaptureCategory.TASK),
    (re.compile(r"tem\s+que|temos\s+que", re.I), CaptureCategory.TASK),
    (re.compile(r"deadline|prazo|até\s+dia", re.I), CaptureCategory.TASK),
]

# Injected context must not be captured back into memory
MEMORY_BLOCK_MARKERS = ("<relevant-memories>", "[memory_context]")

IMPORTANCE_BY_CATEGORY = {
    CaptureCategory.DECISION: 8,
    CaptureCategory.CONTACT: 7,
}
DEFAULT_IMPORTANCE = 5


class CaptureResult(BaseModel):
    captured: int = 0
    categories: list[CaptureCategory] = Field(default_factory=list)


def should_capture(text: str) -> bool:
    if not MIN_CAPTURE_LENGTH <= len(text) <= MAX_CAPTURE_LENGTH:
        return False
    if any(marker in text for marker in MEMORY_BLOCK_MARKERS):
        return False
    return any(pattern.search(text) for pattern, _ in MEMORY_TRIGGERS)


def detect_category(text: str) -> CaptureCategory:
    for pattern, category in MEMORY_TRIGGERS:
        if pattern.search(text):
            return category
    return CaptureCategory.GENERAL


class AutoCapture:
    def __init__(self, persistence: MessagePersistence):
        self._persistence = persistence

    async def capture_from_conversation(
        self,
        conversation_id: UUID | str | None,
        user_message: str,
        assistant_response: str,
        channel: str | None = None,
    ) -> CaptureResult:
        """Save each capturable side of a conversation turn to the memory index."""
        result = CaptureResult()
        for text, source in ((user_message, "user"), (assistant_response, "assistant")):
            if not text or not should_capture(text):
                continue

            category = detect_category(text)
            saved = await self._persistence.save_to_memory_index(
                content=text[:SUMMARY_CHARS],
                key_type=category.value,
                key_name=f"auto_{source}_{int(time.time() * 1000)}",
                importance=IMPORTANCE_BY_CATEGORY.get(category, DEFAULT_IMPORTANCE),
                tags=["auto_capture", source, category.value],
                channel=channel,
                embedding_text=text,
            )
            if not saved:
                logger.error(
                    "Auto-capture failed",
                    conversation_id=str(conversation_id) if conversation_id else None,
                    category=category.value,
                    channel=channel,
                )
                continue

            result.captured += 1
            result.categories.append(category)
            logger.info(
                "Auto-capture saved",
                event_type=LogEventType.MEMORY_CAPTURE,
                conversation_id=str(conversation_id) if conversation_id else None,
                category=category.value,
                source=source,
                channel=channel,
                text_length=len(text),
            )
        return result

    async def batch_capture(self, messages: list[dict]) -> dict[str, int]:
        """Run capture over stored messages ({conversation_id, content, source})."""
        processed = captured = 0
        for message in messages:
            processed += 1
            if not should_capture(message["content"]):
                continue
            is_user = message["source"] == "user"
            result = await self.capture_from_conversation(
                message.get("conversation_id"),
                message["content"] if is_user else "",
                "" if is_user else message["content"],
            )
            captured += result.captured

        logger.info(
            "Batch capture completed",
            event_type=LogEventType.MEMORY_CAPTURE,
            processed=processed,
            captured=captured,
        )
        return {"processed": processed, "captured": captured}
