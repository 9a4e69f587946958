class GatewayError(Exception):
    code = "GATEWAY_ERROR"


class PosUnauthorizedError(GatewayError):
    code = "UNAUTHORIZED"


class ProgramSuspendedError(GatewayError):
    code = "PROGRAM_SUSPENDED"


class IdempotencyConflictError(GatewayError):
    code = "IDEMPOTENCY_CONFLICT"


class IdempotencyInFlightError(GatewayError):
    code = "TRANSACTION_FAILED"
