from __future__ import annotations


class AccountingError(Exception):
    """Base class for every error raised by the accounting core."""


class ValidationError(AccountingError):
    """The request is malformed; retrying it unchanged cannot succeed."""


class MissingRateError(ValidationError):
    def __init__(self, currency: str) -> None:
        self.currency = currency
        super().__init__(f"A positive exchange rate is required to convert {currency} to the base currency")


class InsufficientFundsError(ValidationError):
    def __init__(self, *, account_id: object, available: object, required: object, currency: str) -> None:
        self.account_id = account_id
        self.available = available
        self.required = required
        self.currency = currency
        super().__init__(
            f"Insufficient balance in account {account_id}: available={available} {currency} "
            f"required={required} {currency}"
        )


class NotFoundError(AccountingError):
    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class StoreError(AccountingError):
    """The underlying data store rejected or failed a request."""
