"""SQL-backed chat cache.

Implements the ChatCache protocol used by ChatSession. Every operation runs
under the storage retry policy (any error is retried, 1 s initial delay).
"""

from typing import Any, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentencify.db.models import ChatHistory
from sentencify.llm.retry import with_storage_retry
from sentencify.schemas.chat import ChatMessage
from sentencify.utils.logging import log, get_logger

MODULE = "db.chat_cache"
logger = get_logger()


def _serialize(messages: Sequence[Union[ChatMessage, dict]]) -> list[dict[str, Any]]:
    return [
        (m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m))
        .model_dump(mode="json", by_alias=True, exclude_none=True)
        for m in messages
    ]


class SqlChatCache:
    """Chat histories stored one row per conversation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_chat(self, key: str) -> list[ChatMessage]:
        async def _get() -> list[ChatMessage]:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ChatHistory).where(ChatHistory.conversation_id == key)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return []
                return [ChatMessage.model_validate(m) for m in row.messages or []]

        return await with_storage_retry(_get)

    async def save_chat(self, key: str, messages: Sequence[Union[ChatMessage, dict]]) -> None:
        payload = _serialize(messages)

        async def _save() -> None:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ChatHistory).where(ChatHistory.conversation_id == key)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(ChatHistory(conversation_id=key, messages=payload))
                else:
                    row.messages = payload
                await session.commit()

        await with_storage_retry(_save)
        log.debug(logger, MODULE, "save_done", "Chat saved",
                  conversation_id=key, entries=len(payload))

    async def delete_chat(self, key: str) -> None:
        async def _delete() -> None:
            async with self.session_factory() as session:
                await session.execute(
                    delete(ChatHistory).where(ChatHistory.conversation_id == key)
                )
                await session.commit()

        await with_storage_retry(_delete)
        log.debug(logger, MODULE, "delete_done", "Chat deleted", conversation_id=key)

    async def clear_all(self) -> None:
        async def _clear() -> None:
            async with self.session_factory() as session:
                await session.execute(delete(ChatHistory))
                await session.commit()

        await with_storage_retry(_clear)
        log.info(logger, MODULE, "clear_done", "All chats deleted")

    async def export_all(self) -> dict[str, list[dict[str, Any]]]:
        """Every stored conversation, keyed by conversation id."""
        async def _export() -> dict[str, list[dict[str, Any]]]:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ChatHistory).order_by(ChatHistory.conversation_id)
                )
                return {row.conversation_id: list(row.messages or []) for row in result.scalars()}

        return await with_storage_retry(_export)

    async def import_all(self, data: dict[str, Sequence[Union[ChatMessage, dict]]]) -> int:
        """Store every conversation in ``data``, replacing existing ones.

        Returns:
            Number of conversations imported.
        """
        for key, messages in data.items():
            await self.save_chat(key, messages)
        log.info(logger, MODULE, "import_done", "Chats imported", conversations=len(data))
        return len(data)
