"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmountError(DomainException):
    """Amount is missing, malformed, or not strictly positive"""

    pass


class SubjectNotFound(DomainException):
    """Identity does not resolve to a known account"""

    pass


class RecipientNotFound(DomainException):
    """Recipient alias or identity could not be resolved"""

    pass


class ExternalScoringUnavailable(DomainException):
    """Risk vendor could not produce a score; fraud gating must fail closed"""

    pass


class ProviderUnavailable(DomainException):
    """Mobile money provider returned an error or is unreachable"""

    pass


class StorageUnavailable(DomainException):
    """Database rejected or failed a read or write"""

    pass


class SessionConflict(DomainException):
    """USSD session was modified by a concurrent turn"""

    pass


class ImmutableLedgerError(DomainException):
    """Attempted to edit or delete a recorded ledger event"""

    pass
