from functools import lru_cache
from confluent_kafka import Producer
from common.settings import settings

TOPIC_CAMPAIGN_EVENTS = "campaign_events"

@lru_cache(maxsize=1)
def get_producer() -> Producer:
    # created on first use
    return Producer({"bootstrap.servers": settings.kafka_bootstrap, "enable.idempotence": True})
