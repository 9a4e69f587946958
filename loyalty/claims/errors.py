class ClaimError(Exception):
    code = "CLAIM_ERROR"


class ClaimNotFoundError(ClaimError):
    code = "CLAIM_NOT_FOUND"


class ClaimAlreadyUsedError(ClaimError):
    code = "CLAIM_ALREADY_USED"


class ClaimExpiredError(ClaimError):
    code = "CLAIM_EXPIRED"


class ClaimNotCancellableError(ClaimError):
    code = "CLAIM_NOT_CANCELLABLE"


class ClaimProvisioningFailedError(ClaimError):
    code = "WALLET_PROVISIONING_FAILED"


class ClaimIssueError(ClaimError):
    code = "CLAIM_ISSUE_FAILED"
