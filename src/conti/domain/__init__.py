"""Domain layer for conti.

Services are imported lazily so that the database layer can import
``conti.domain.entities`` without pulling the services in.
"""

_SERVICES = {
    "AccountService": "conti.domain.account",
    "TransactionService": "conti.domain.transaction",
    "SubscriptionService": "conti.domain.subscription",
    "ProfileService": "conti.domain.profile",
    "RenewalProcessor": "conti.domain.renewal",
    "StatementImportService": "conti.domain.statement_import",
    "StatementParser": "conti.domain.statement_parser",
    "SummaryService": "conti.domain.summary",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
