"""Notification channel API endpoints.

Secret config fields are never returned: responses carry the redaction
marker, and sending the marker back in an update keeps the stored secret.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from marketpulse.api.deps import get_core
from marketpulse.core import MonitoringCore
from marketpulse.notifications.encryption import redact_config
from marketpulse.notifications.models import ChannelConfig, ChannelType

# Request/Response schemas


class ChannelRequest(BaseModel):
    """Request model for creating a channel."""

    name: str = Field(..., min_length=1)
    type: ChannelType
    config: dict[str, Any] = {}
    enabled: bool = True


class ChannelUpdateRequest(BaseModel):
    name: str | None = None
    type: ChannelType | None = None
    config: dict[str, Any] | None = None
    enabled: bool | None = None


class ChannelResponse(BaseModel):
    """Response model for a channel; secret fields are redacted."""

    id: int
    name: str
    type: str
    config: dict[str, Any]
    enabled: bool


class ChannelTestResponse(BaseModel):
    success: bool
    response_code: int | None
    error_message: str | None


# Router
router = APIRouter(prefix="/api/channels", tags=["channels"])


def _channel_to_response(channel: ChannelConfig) -> ChannelResponse:
    return ChannelResponse(
        id=channel.id,
        name=channel.name,
        type=channel.type.value,
        config=redact_config(channel.config),
        enabled=channel.enabled,
    )


async def _require_channel(core: MonitoringCore, channel_id: int) -> ChannelConfig:
    channel = await core.get_channel(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


@router.get("", response_model=list[ChannelResponse])
async def list_channels(core: MonitoringCore = Depends(get_core)) -> list[ChannelResponse]:
    channels = await core.list_channels()
    return [_channel_to_response(c) for c in channels]


@router.post("", response_model=ChannelResponse, status_code=201)
async def create_channel(
    request: ChannelRequest,
    core: MonitoringCore = Depends(get_core),
) -> ChannelResponse:
    """Create a channel. Secret fields are encrypted before they are stored."""
    channel = await core.create_channel(
        ChannelConfig(
            name=request.name,
            type=request.type,
            config=request.config,
            enabled=request.enabled,
        )
    )
    return _channel_to_response(channel)


@router.get("/{channel_id}", response_model=ChannelResponse)
async def get_channel(channel_id: int, core: MonitoringCore = Depends(get_core)) -> ChannelResponse:
    channel = await _require_channel(core, channel_id)
    return _channel_to_response(channel)


@router.patch("/{channel_id}", response_model=ChannelResponse)
async def update_channel(
    channel_id: int,
    request: ChannelUpdateRequest,
    core: MonitoringCore = Depends(get_core),
) -> ChannelResponse:
    await _require_channel(core, channel_id)
    channel = await core.update_channel(channel_id, **request.model_dump(exclude_unset=True))
    return _channel_to_response(channel)


@router.delete("/{channel_id}", status_code=204)
async def delete_channel(channel_id: int, core: MonitoringCore = Depends(get_core)) -> None:
    await _require_channel(core, channel_id)
    await core.delete_channel(channel_id)


@router.post("/{channel_id}/test", response_model=ChannelTestResponse)
async def test_channel(
    channel_id: int,
    core: MonitoringCore = Depends(get_core),
) -> ChannelTestResponse:
    """Send an info-level test notification through one channel.

    Delivery failures are reported in the body, not as an HTTP error.
    """
    await _require_channel(core, channel_id)
    result = await core.test_channel(channel_id)
    return ChannelTestResponse(
        success=result.success,
        response_code=result.response_code,
        error_message=result.error_message,
    )
