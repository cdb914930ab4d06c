"""Domain models and types for the travel-agency accounting core.

This package contains in-memory (Pydantic) models describing ledger
movements, accounts, exchange rates, VAT records and operator obligations,
plus the pure arithmetic on them (currency conversion, VAT, due dates). They
are independent from persistence models so that business logic and testing
can evolve without DB coupling.
"""

__all__ = [
    "currency",
    "ledger",
    "vat",
]
