"""Conversation history store backed by Supabase PostgreSQL."""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from supabase import create_client, Client

from models.conversation import USER_ROLE, Turn
from config import SUPABASE_URL, SUPABASE_KEY, MESSAGES_TABLE
from errors import CollaboratorError

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Read and append conversation messages.

    Each row of the messages table holds one message: ``conversation_id``,
    ``user_id``, ``role``, ``content``, ``document_ids`` (text[]) and
    ``created_at``.
    """

    def __init__(
        self,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = MESSAGES_TABLE
    ):
        """Initialize the conversation manager with Supabase client."""
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.table_name = table_name
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"ConversationManager initialized with table: {table_name}")

    def find_recent_document_refs(
        self,
        conversation_id: str,
        user_id: str,
        limit: int
    ) -> List[List[str]]:
        """
        Get the document ids attached to the most recent user messages.

        Only user rows are read, so ``limit`` counts exchanges rather than
        individual question and answer rows.

        Args:
            conversation_id: ID of the conversation
            user_id: Owner of the conversation
            limit: Number of most recent user messages to inspect

        Returns:
            One list of document ids per user message, newest first

        Raises:
            CollaboratorError: If the query fails
        """
        try:
            result = (
                self.client.table(self.table_name)
                .select("document_ids")
                .eq("conversation_id", conversation_id)
                .eq("user_id", user_id)
                .eq("role", USER_ROLE)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(
                f"Error retrieving document references for conversation {conversation_id}: {e}",
                extra={"conversation_id": conversation_id, "stage": "history"}
            )
            raise CollaboratorError("history", f"Failed to read conversation history: {str(e)}") from e

        return [list(row.get("document_ids") or []) for row in (result.data or [])]

    def find_recent_turns(self, conversation_id: str, user_id: str, limit: int) -> List[Turn]:
        """
        Get the most recent messages of a conversation as turns.

        Returns:
            Turns in chronological order (oldest first)

        Raises:
            CollaboratorError: If the query fails
        """
        try:
            result = (
                self.client.table(self.table_name)
                .select("role, content")
                .eq("conversation_id", conversation_id)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(
                f"Error retrieving turns for conversation {conversation_id}: {e}",
                extra={"conversation_id": conversation_id, "stage": "history"}
            )
            raise CollaboratorError("history", f"Failed to read conversation history: {str(e)}") from e

        rows = list(reversed(result.data or []))
        return [Turn(role=row["role"], content=row["content"]) for row in rows]

    def add_message(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        document_ids: Optional[Sequence[str]] = None
    ) -> None:
        """
        Append one message to a conversation.

        Raises:
            CollaboratorError: If the insert fails
        """
        try:
            self.client.table(self.table_name).insert({
                "conversation_id": conversation_id,
                "user_id": user_id,
                "role": role,
                "content": content,
                "document_ids": list(document_ids or []),
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
        except Exception as e:
            logger.error(
                f"Error adding message to conversation {conversation_id}: {e}",
                extra={"conversation_id": conversation_id, "stage": "history"}
            )
            raise CollaboratorError("history", f"Failed to store message: {str(e)}") from e

        logger.info(
            f"Added {role} message to conversation {conversation_id}",
            extra={"conversation_id": conversation_id}
        )
