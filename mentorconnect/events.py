import json
import logging

import aio_pika

from mentorconnect import config

logger = logging.getLogger("mentorconnect.events")


async def get_exchange():
    conn = await aio_pika.connect_robust(config.RABBIT_URL)
    ch = await conn.channel()
    ex = await ch.declare_exchange(config.EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC)
    return conn, ch, ex


async def publish_event(routing_key: str, payload: dict) -> bool:
    """Publish one event on the topic exchange. Never raises."""
    if not config.RABBIT_URL:
        logger.debug("RABBIT_URL not set, dropping %s", routing_key)
        return False
    try:
        conn, ch, ex = await get_exchange()
        msg = aio_pika.Message(
            body=json.dumps(payload, default=str).encode(),
            content_type="application/json",
        )
        await ex.publish(msg, routing_key=routing_key)
        await conn.close()
    except Exception as e:
        logger.warning(f"Publishing {routing_key} failed, error={type(e).__name__}")
        return False
    return True
