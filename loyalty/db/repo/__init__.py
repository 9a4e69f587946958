from loyalty.db.repo.claim_codes_repo import ClaimCodesRepo
from loyalty.db.repo.idempotency_repo import IdempotencyRepo
from loyalty.db.repo.ledger_repo import LedgerRepo
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.pos_api_keys_repo import PosApiKeysRepo
from loyalty.db.repo.programs_repo import ProgramsRepo
