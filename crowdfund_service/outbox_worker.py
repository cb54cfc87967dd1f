"""
Relays committed ledger events from the outbox table to Kafka

A pass reads a batch in one short transaction, produces and flushes with no
transaction open, then records the delivery reports in a second one. Rows
with no report by the end of the flush stay `new` and are sent again on a
later pass, so delivery is at-least-once.
"""
import logging
import time
from typing import List

from confluent_kafka import KafkaException
from sqlalchemy import select, update

from common.kafka import get_producer
from common.settings import settings
from common.tracing import outbox_tracer
from crowdfund_service.models import Outbox
from crowdfund_service.store import LedgerStore

logger = logging.getLogger(__name__)

class DeliveryReports:
    """Collects per-row delivery callbacks from the producer"""

    def __init__(self):
        self.delivered: List[int] = []
        self.failed: List[int] = []

    def callback(self, row_id: int):
        def on_delivery(err, msg):
            if err is None:
                self.delivered.append(row_id)
            else:
                logger.error(f"Delivery failed for outbox row {row_id}: {err}")
                self.failed.append(row_id)
        return on_delivery

def mark(db, row_ids: List[int], status: str):
    if row_ids:
        db.execute(update(Outbox).where(Outbox.id.in_(row_ids), Outbox.status == "new").values(status=status))

def publish_pending(store: LedgerStore, producer, limit: int = 50, flush_timeout: float = None) -> int:
    """Publish up to `limit` new outbox rows in id order; returns how many were confirmed delivered"""
    if flush_timeout is None:
        flush_timeout = settings.outbox_flush_timeout

    with outbox_tracer.start_span("publish_pending") as span:
        with store.transaction(readonly=True) as db:
            batch = db.execute(
                select(Outbox.id, Outbox.topic, Outbox.payload)
                .where(Outbox.status == "new").order_by(Outbox.id).limit(limit)
            ).all()
        if not batch:
            return 0

        reports = DeliveryReports()
        for row_id, topic, payload in batch:
            try:
                producer.produce(topic, value=payload.encode("utf-8"), on_delivery=reports.callback(row_id))
            except (KafkaException, BufferError) as e:
                logger.error(f"Failed to publish outbox row {row_id}: {e}")
                reports.failed.append(row_id)

        remaining = producer.flush(flush_timeout)
        if remaining:
            logger.warning(f"{remaining} outbox messages unconfirmed after {flush_timeout}s; left for the next pass")

        delivered, failed = list(reports.delivered), list(reports.failed)
        with store.transaction() as db:
            mark(db, delivered, "sent")
            mark(db, failed, "failed")

        span.add_tag("outbox.batch", len(batch))
        span.add_tag("outbox.sent", len(delivered))
        span.add_tag("outbox.failed", len(failed))
    return len(delivered)

def run(store: LedgerStore = None, producer=None):
    store = store or LedgerStore(settings.database_url).open()
    producer = producer or get_producer()
    logger.info("📤 Outbox relay started")
    while True:
        try:
            publish_pending(store, producer, settings.outbox_batch_size)
        except Exception:
            logger.exception("Outbox relay pass failed")
        time.sleep(settings.outbox_poll_interval)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
