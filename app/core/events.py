"""
Organization-scoped live updates over Redis Pub/Sub.

- ``OrganizationNotifier`` publishes domain events after their transaction
  has committed. Delivery is best-effort: a Redis failure is logged and
  never turns a committed change into an error.
- ``event_generator`` feeds the SSE endpoint, filtering the shared channel
  down to one organization and emitting keepalive heartbeats.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator
from uuid import UUID

import redis.asyncio as redis
import structlog
from fastapi import Request
from redis.exceptions import RedisError

log = structlog.get_logger()

# Configuration
REDIS_PUBSUB_CHANNEL = "rita:events:pubsub"
HEARTBEAT_INTERVAL = 30  # seconds

MEMBER_ROLE_UPDATED = "member_role_updated"
MEMBER_STATUS_UPDATED = "member_status_updated"
MEMBER_REMOVED = "member_removed"
DATA_SOURCE_UPDATED = "data_source_updated"


def encode_event(organization_id: UUID, event: dict[str, Any]) -> str:
    return json.dumps(
        {
            "organization_id": str(organization_id),
            "type": event["type"],
            "data": event.get("data", {}),
        },
        default=str,
    )


class OrganizationNotifier:
    """Pushes ``{type, data}`` events to every client of one organization."""

    def __init__(self, client: redis.Redis, channel: str = REDIS_PUBSUB_CHANNEL):
        self._redis = client
        self._channel = channel

    async def send_to_organization(self, organization_id: UUID, event: dict[str, Any]) -> bool:
        """Publish an event. Returns False when delivery failed."""
        try:
            await self._redis.publish(self._channel, encode_event(organization_id, event))
        except RedisError as exc:
            log.warning(
                "events.publish_failed",
                organization_id=str(organization_id),
                type=event.get("type"),
                error=str(exc),
            )
            return False
        return True


def _decode_for_org(raw: str, organization_id: UUID) -> dict[str, Any] | None:
    """Decode a pub/sub payload, or None when it belongs to another org."""
    try:
        event = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(event, dict) or str(event.get("organization_id")) != str(organization_id):
        return None
    return event


async def event_generator(
    request: Request,
    client: redis.Redis,
    organization_id: UUID,
    channel: str = REDIS_PUBSUB_CHANNEL,
) -> AsyncGenerator[dict, None]:
    """
    SSE generator for one organization:
    - live events only (no replay)
    - 30s keepalive heartbeat
    - cleanup on disconnect
    """
    pubsub = client.pubsub()
    await pubsub.subscribe(channel)
    log.info("events.stream_opened", organization_id=str(organization_id))

    loop = asyncio.get_running_loop()
    last_sent = loop.time()

    try:
        while True:
            if await request.is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)

            if message is None or message["type"] != "message":
                if loop.time() - last_sent >= HEARTBEAT_INTERVAL:
                    last_sent = loop.time()
                    yield {"comment": "heartbeat"}
                continue

            event = _decode_for_org(message["data"], organization_id)
            if event is None:
                continue
            last_sent = loop.time()
            yield {
                "event": event["type"],
                "data": json.dumps({"type": event["type"], "data": event["data"]}),
            }

    except asyncio.CancelledError:
        log.info("events.stream_cancelled", organization_id=str(organization_id))
        raise
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
