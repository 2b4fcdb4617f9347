from __future__ import annotations

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.message import Attachment, Message
from dm_service.domain.value_objects.ids import MessageId, UserId
from dm_service.infrastructure.db.mappers import message as mapper
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.repositories._errors import db_errors


def _between(user_a: UserId, user_b: UserId):
    return or_(
        and_(MessageModel.sender_id == user_a, MessageModel.receiver_id == user_b),
        and_(MessageModel.sender_id == user_b, MessageModel.receiver_id == user_a),
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @db_errors
    async def get_by_id(self, message_id: MessageId) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    @db_errors
    async def list_between(self, user_a: UserId, user_b: UserId) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(_between(user_a, user_b))
            .order_by(MessageModel.created_at.asc(), MessageModel.seq.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    @db_errors
    async def get_last_between(self, user_a: UserId, user_b: UserId) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(_between(user_a, user_b))
            .order_by(MessageModel.created_at.desc(), MessageModel.seq.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @db_errors
    async def insert(
        self,
        sender_id: UserId,
        receiver_id: UserId,
        content: str,
        *,
        reply_to_id: MessageId | None = None,
        attachment: Attachment | None = None,
    ) -> Message:
        stmt = (
            insert(MessageModel)
            .values(
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                read=False,
                delivered=False,
                reply_to_id=reply_to_id,
                attachment_url=attachment.url if attachment else None,
                attachment_mime_type=attachment.mime_type if attachment else None,
            )
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    @db_errors
    async def mark_delivered(self, message_id: MessageId) -> Message | None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.delivered.is_(False))
            .values(delivered=True)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    @db_errors
    async def mark_read(self, sender_id: UserId, receiver_id: UserId) -> list[Message]:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.sender_id == sender_id,
                MessageModel.receiver_id == receiver_id,
                MessageModel.read.is_(False),
            )
            .values(read=True, delivered=True)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        changed = [mapper.model_to_entity(m) for m in result.scalars().all()]
        return sorted(changed, key=lambda m: (m.created_at, m.seq))
