"""
Ledger store: owns the engine, the session factory and the critical sections

One instance is created at service start and disposed at shutdown. The
registry, the contribution ledger and the reward accounts all go through it.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from common.error_handling import ServiceError, ErrorCodes
from common.kafka import TOPIC_CAMPAIGN_EVENTS
from common.schemas import CampaignEvent
from crowdfund_service.db import READ_ONLY, build_engine, build_session_factory
from crowdfund_service.locks import KeyedLocks
from crowdfund_service.models import Base, Outbox

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

def system_clock() -> int:
    return int(time.time())

class LedgerStore:
    def __init__(self, database_url: str, clock: Optional[Clock] = None, echo: bool = False):
        self.database_url = database_url
        self.clock = clock or system_clock
        self.echo = echo
        self.engine = None
        self._sessions = None

        # campaign lock is always taken before a holder lock
        self.campaign_locks = KeyedLocks()
        self.holder_locks = KeyedLocks()
        self.creation_lock = threading.Lock()

    def open(self) -> "LedgerStore":
        if self.engine is not None:
            return self
        self.engine = build_engine(self.database_url, echo=self.echo)
        Base.metadata.create_all(bind=self.engine)
        self._sessions = build_session_factory(self.engine)
        logger.info(f"Ledger store opened at {self.engine.url.render_as_string(hide_password=True)}")
        return self

    def close(self):
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self._sessions = None
        logger.info("Ledger store closed")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def now(self) -> int:
        return int(self.clock())

    @contextmanager
    def transaction(self, readonly: bool = False):
        """Yield a session; commit on success, roll back on any exception.

        A `readonly` transaction must not write. On SQLite it opens with a
        deferred BEGIN so reads do not take the write lock.
        """
        if self._sessions is None:
            raise ServiceError(ErrorCodes.SERVICE_UNAVAILABLE, "ledger store is not open")
        session: Session = self._sessions()
        try:
            if readonly:
                session.connection(execution_options={READ_ONLY: True})
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Ledger store error: {e}")
            raise ServiceError(ErrorCodes.DATABASE_ERROR, "ledger store unavailable", e) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

def add_event(db: Session, event: CampaignEvent, topic: str = TOPIC_CAMPAIGN_EVENTS):
    """Queue an event in the outbox as part of the caller's transaction"""
    db.add(Outbox(topic=topic, payload=event.model_dump_json(), created_at=event.occurred_at, status="new"))
