from sqlalchemy import Column, Integer, String, BigInteger, Boolean, ForeignKey, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# amounts, totals and balances are stored as signed 64-bit integers
MAX_AMOUNT = 2**63 - 1

class Campaign(Base):
    __tablename__ = "campaigns"
    id = Column(Integer, primary_key=True, autoincrement=False)
    creator = Column(String(128), nullable=False)
    title = Column(String(255), nullable=False)
    funding_goal = Column(BigInteger, nullable=False)
    deadline = Column(BigInteger, nullable=False)  # epoch seconds
    amount_raised = Column(BigInteger, nullable=False, default=0)
    finalized = Column(Boolean, nullable=False, default=False)
    goal_reached = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False)
    finalized_at = Column(BigInteger, nullable=True)
    finalized_by = Column(String(128), nullable=True)

class Contribution(Base):
    __tablename__ = "contributions"
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), primary_key=True)
    contributor = Column(String(128), primary_key=True)
    amount = Column(BigInteger, nullable=False, default=0)  # cumulative

class RewardAccount(Base):
    __tablename__ = "reward_accounts"
    holder = Column(String(128), primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)

class Outbox(Base):
    __tablename__ = "outbox"
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    topic = Column(String(64), nullable=False)
    payload = Column(String(4000), nullable=False)
    created_at = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="new")  # new|sent|failed

    __table_args__ = (Index("ix_outbox_status", "status"),)
