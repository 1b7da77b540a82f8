"""Decides which documents a conversational turn should be answered from."""
import logging
import re
from typing import Iterable, List, Optional, Sequence

from config import CONTEXT_LOOKBACK_MESSAGES, REFERENCE_LOOKBACK_MESSAGES
from models.context import ContextResolution, ContextSource

logger = logging.getLogger(__name__)

# Anaphoric references to a document discussed earlier in the conversation
REFERENCE_PATTERNS = [
    re.compile(r"\b(this|that|the|it|its)\b.*\b(document|file|pdf|report|paper)\b", re.IGNORECASE),
    re.compile(r"\b(what|tell me|explain|describe)\b.*\b(about|in)\b.*\b(it|this|that)\b", re.IGNORECASE),
    re.compile(r"\b(continue|more|further|additional)\b.*\b(details|information|info)\b", re.IGNORECASE),
    re.compile(r"\b(above|previous|earlier|mentioned)\b", re.IGNORECASE),
    re.compile(r"^\s*(and|also|additionally|furthermore|moreover)\b", re.IGNORECASE),
]


def _dedupe(document_ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(doc_id for doc_id in document_ids if doc_id))


class ContextResolver:
    """Resolve the active document set with a priority cascade."""

    def __init__(
        self,
        history_store,
        conversation_lookback: int = CONTEXT_LOOKBACK_MESSAGES,
        reference_lookback: int = REFERENCE_LOOKBACK_MESSAGES
    ):
        """
        Initialize the resolver.

        Args:
            history_store: Collaborator exposing find_recent_document_refs()
            conversation_lookback: Messages inspected for conversation context
            reference_lookback: Messages inspected when the query refers back
        """
        if conversation_lookback <= 0 or reference_lookback <= 0:
            raise ValueError("Lookback windows must be positive")

        self.history_store = history_store
        self.conversation_lookback = conversation_lookback
        self.reference_lookback = reference_lookback

    def resolve(
        self,
        user_id: str,
        query_text: str,
        explicit_document_ids: Optional[Sequence[str]] = None,
        conversation_id: Optional[str] = None
    ) -> ContextResolution:
        """
        Pick the documents to search for this query.

        Order: explicitly attached documents, then (for queries that refer
        back to something) documents from the wider recent window, then
        documents from the last few messages, then nothing. Never raises;
        history failures count as "no documents" for that step.
        """
        explicit = _dedupe(explicit_document_ids or [])
        if explicit:
            logger.info(f"Using explicitly attached documents: {explicit}")
            return ContextResolution(
                source=ContextSource.EXPLICIT,
                document_ids=explicit,
                context_used=False
            )

        if conversation_id:
            # Reference check must come before the plain conversation window:
            # "what about it?" right after a message about D1 has to resolve as
            # reference_detected over the wider window, not as conversation_context.
            if self.detect_document_reference(query_text):
                recent = self._recent_document_ids(conversation_id, user_id, self.reference_lookback)
                if recent:
                    logger.info(f"Detected reference, using recent documents: {recent}")
                    return ContextResolution(
                        source=ContextSource.REFERENCE_DETECTED,
                        document_ids=recent,
                        context_used=True
                    )
            else:
                recent = self._recent_document_ids(conversation_id, user_id, self.conversation_lookback)
                if recent:
                    logger.info(f"Using conversation context documents: {recent}")
                    return ContextResolution(
                        source=ContextSource.CONVERSATION_CONTEXT,
                        document_ids=recent,
                        context_used=True
                    )

        logger.info("No documents available for context")
        return ContextResolution(source=ContextSource.NO_DOCUMENTS, document_ids=[], context_used=False)

    @staticmethod
    def detect_document_reference(query_text: Optional[str]) -> bool:
        """Return True if the query looks like it refers to an earlier document."""
        if not query_text:
            return False
        return any(pattern.search(query_text) for pattern in REFERENCE_PATTERNS)

    def _recent_document_ids(self, conversation_id: str, user_id: str, limit: int) -> List[str]:
        """Union of the document ids attached to the last ``limit`` messages."""
        try:
            refs = self.history_store.find_recent_document_refs(conversation_id, user_id, limit)
        except Exception as e:
            logger.error(
                f"Error getting conversation context for {conversation_id}: {e}",
                extra={"conversation_id": conversation_id, "stage": "history"}
            )
            return []

        return _dedupe(doc_id for message_ids in (refs or []) for doc_id in (message_ids or []))
