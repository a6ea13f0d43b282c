"""Notification channel store.

Channel configs are validated and have their secret fields encrypted before
they are written. Reads return the encrypted form; only the dispatcher
decrypts, right before delivery.

Usage:
    from marketpulse.notifications.repository import ChannelConfigRepository

    repo = ChannelConfigRepository(async_session, cipher)
    channel = await repo.create(ChannelConfig(name="ops-slack", type=ChannelType.CHAT, config={...}))
    enabled = await repo.list_enabled()
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.errors import ConfigurationError
from marketpulse.models.channel import NotificationChannelRecord
from marketpulse.notifications.encryption import SecretCipher, redact_config, restore_redacted
from marketpulse.notifications.models import ChannelConfig, ChannelType

logger = logging.getLogger(__name__)


class ChannelConfigStore(Protocol):
    """Protocol for notification channel persistence."""

    async def list_enabled(self) -> list[ChannelConfig]: ...

    async def list_all(self) -> list[ChannelConfig]: ...

    async def get(self, channel_id: int) -> ChannelConfig | None: ...

    async def create(self, channel: ChannelConfig) -> ChannelConfig: ...

    async def update(self, channel_id: int, **changes: Any) -> ChannelConfig: ...

    async def delete(self, channel_id: int) -> bool: ...


class ChannelConfigRepository:
    """SQLAlchemy-backed channel store over ``notification_channels``."""

    def __init__(self, session_factory: Callable[[], AsyncSession], cipher: SecretCipher):
        self._session_factory = session_factory
        self.cipher = cipher

    async def list_enabled(self) -> list[ChannelConfig]:
        stmt = (
            select(NotificationChannelRecord)
            .where(NotificationChannelRecord.enabled.is_(True))
            .order_by(NotificationChannelRecord.id)
        )
        return await self._load(stmt)

    async def list_all(self) -> list[ChannelConfig]:
        return await self._load(select(NotificationChannelRecord).order_by(NotificationChannelRecord.id))

    async def get(self, channel_id: int) -> ChannelConfig | None:
        async with self._session_factory() as session:
            record = await session.get(NotificationChannelRecord, channel_id)
        return _to_channel(record) if record is not None else None

    async def create(self, channel: ChannelConfig) -> ChannelConfig:
        """Validate, encrypt and persist a channel.

        Raises:
            ConfigurationError: If the channel is malformed or the name is taken
        """
        channel.validate()
        record = NotificationChannelRecord(
            name=channel.name,
            type=ChannelType(channel.type).value,
            config=self.cipher.encrypt_config(channel.config),
            enabled=channel.enabled,
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConfigurationError(f"Channel name '{channel.name}' already exists") from e
            await session.refresh(record)

        logger.info(
            "Created %s channel %d (%s) config=%s",
            record.type,
            record.id,
            record.name,
            redact_config(channel.config),
        )
        return _to_channel(record)

    async def update(self, channel_id: int, **changes: Any) -> ChannelConfig:
        """Update name, type, config or enabled flag.

        Secret fields sent back as the redaction marker keep their stored value.

        Raises:
            ConfigurationError: If the channel does not exist or the result is malformed
        """
        unknown = set(changes) - {"name", "type", "config", "enabled"}
        if unknown:
            raise ConfigurationError(f"Unknown channel fields: {', '.join(sorted(unknown))}")

        async with self._session_factory() as session:
            record = await session.get(NotificationChannelRecord, channel_id)
            if record is None:
                raise ConfigurationError(f"Channel {channel_id} not found")

            stored = self.cipher.decrypt_config(record.config or {})
            config = changes.get("config")
            if config is not None:
                config = restore_redacted(config, stored)
            else:
                config = stored

            updated = ChannelConfig(
                id=record.id,
                name=changes.get("name", record.name),
                type=_coerce_type(changes.get("type", record.type)),
                config=config,
                enabled=changes.get("enabled", record.enabled),
            )
            updated.validate()

            record.name = updated.name
            record.type = updated.type.value
            record.config = self.cipher.encrypt_config(updated.config)
            record.enabled = updated.enabled
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConfigurationError(f"Channel name '{updated.name}' already exists") from e
            await session.refresh(record)

        logger.info("Updated channel %d (%s)", channel_id, ", ".join(sorted(changes)))
        return _to_channel(record)

    async def delete(self, channel_id: int) -> bool:
        async with self._session_factory() as session:
            record = await session.get(NotificationChannelRecord, channel_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()

        logger.info("Deleted channel %d", channel_id)
        return True

    async def _load(self, stmt) -> list[ChannelConfig]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_channel(record) for record in result.scalars().all()]


def _coerce_type(value: Any) -> ChannelType:
    try:
        return ChannelType(value)
    except ValueError as e:
        raise ConfigurationError(f"Unknown channel type: {value!r}") from e


def _to_channel(record: NotificationChannelRecord) -> ChannelConfig:
    return ChannelConfig(
        id=record.id,
        name=record.name,
        type=ChannelType(record.type),
        config=dict(record.config or {}),
        enabled=record.enabled,
    )
