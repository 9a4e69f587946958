from loyalty.db.models.claim_codes import ClaimCode
from loyalty.db.models.idempotency_records import IdempotencyRecord
from loyalty.db.models.ledger_transactions import LedgerTransaction
from loyalty.db.models.member_ledgers import MemberLedger
from loyalty.db.models.pos_api_keys import PosApiKey
from loyalty.db.models.programs import Program
