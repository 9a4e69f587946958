from loyalty.ledger.service import LedgerService

__all__ = ["LedgerService"]
