import json
import structlog
from kafka import KafkaProducer
from fulfillment.core.config import settings

log = structlog.get_logger(__name__)

_producer = None

def _get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    if not settings.KAFKA_ENABLED:
        log.debug("kafka_disabled", topic=topic, key=key, type=value.get("type"))
        return
    p = _get_producer()
    p.send(topic, key=key, value=value)
    p.flush(5)
    log.info("event_published", topic=topic, key=key, type=value.get("type"))

def close():
    global _producer
    if _producer is not None:
        _producer.close(5)
        _producer = None
