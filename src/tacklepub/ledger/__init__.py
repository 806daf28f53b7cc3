"""Topic ledger: per-topic publication status."""

from tacklepub.ledger.models import LedgerStatus, TopicLedgerRecord
from tacklepub.ledger.store import TopicLedger

__all__ = ["LedgerStatus", "TopicLedger", "TopicLedgerRecord"]
