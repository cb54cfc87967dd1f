import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from common.error_handling import InvalidArgument
from common.schemas import RewardTokenInfo
from crowdfund_service.models import MAX_AMOUNT, RewardAccount
from crowdfund_service.store import LedgerStore

logger = logging.getLogger(__name__)

class RewardIssuance:
    """Fixed-ratio issuance: every smallest unit contributed mints `ratio` units of credit"""

    def __init__(self, ratio: int):
        if isinstance(ratio, bool) or not isinstance(ratio, int) or ratio <= 0:
            raise InvalidArgument(f"issuance ratio must be a positive integer, got {ratio!r}", field="ratio")
        self.ratio = ratio

    def credit_for(self, amount: int) -> int:
        return amount * self.ratio

class RewardCreditAccount:
    def __init__(self, store: LedgerStore, issuance: RewardIssuance,
                 token_name: str = "Crowdfund Reward Token", token_symbol: str = "CRT"):
        self.store = store
        self.issuance = issuance
        self.token_name = token_name
        self.token_symbol = token_symbol

    def balance_of(self, holder: str) -> int:
        with self.store.transaction(readonly=True) as db:
            account = db.get(RewardAccount, holder)
            return account.balance if account else 0

    def total_supply(self) -> int:
        with self.store.transaction(readonly=True) as db:
            return db.scalar(select(func.coalesce(func.sum(RewardAccount.balance), 0)))

    def token_info(self) -> RewardTokenInfo:
        return RewardTokenInfo(
            name=self.token_name,
            symbol=self.token_symbol,
            issuance_ratio=self.issuance.ratio,
            total_supply=self.total_supply(),
        )

    def credit(self, db: Session, holder: str, contributed: int) -> int:
        # Only the contribution ledger calls this, inside its transaction and
        # while holding the holder's lock.
        minted = self.issuance.credit_for(contributed)
        account = db.get(RewardAccount, holder, with_for_update=True)
        if account is None:
            account = RewardAccount(holder=holder, balance=0)
            db.add(account)
        if account.balance + minted > MAX_AMOUNT:
            raise InvalidArgument(f"reward balance of {holder} would exceed {MAX_AMOUNT}", field="amount")
        account.balance += minted
        logger.debug(f"Credited {minted} {self.token_symbol} to {holder}")
        return minted
