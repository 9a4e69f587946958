from loyalty.workers.tasks.ledger_maintenance import run_claim_expiry_sweep, run_idempotency_purge

__all__ = [
    "run_claim_expiry_sweep",
    "run_idempotency_purge",
]
