class LedgerError(Exception):
    code = "LEDGER_ERROR"


class LedgerValidationError(LedgerError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MemberNotFoundError(LedgerError):
    code = "NOT_FOUND"


class MemberInactiveError(LedgerError):
    code = "MEMBER_INACTIVE"


class InsufficientBalanceError(LedgerError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, *, current_balance: int, requested: int) -> None:
        super().__init__(f"requested {requested} points, balance is {current_balance}")
        self.current_balance = current_balance
        self.requested = requested
