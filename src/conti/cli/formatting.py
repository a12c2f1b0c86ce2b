"""Plain-text rendering of ledger entities for the CLI."""

from decimal import Decimal

from conti.domain.entities import Account, Subscription, Transaction


def format_money(amount: Decimal, currency: str = "EUR") -> str:
    return f"{amount:,.2f} {currency}"


def account_line(acc: Account) -> str:
    iban = f" | IBAN: {acc.iban}" if acc.iban else ""
    return (
        f"ID: {acc.id} | {acc.name:20s} | {acc.type.value:12s} | "
        f"Balance: {format_money(acc.balance, acc.currency)}{iban}"
    )


def transaction_line(txn: Transaction) -> str:
    flag = " (recurring)" if txn.is_recurring else ""
    return (
        f"{txn.date.strftime('%Y-%m-%d')} | {txn.amount:>12,.2f} | {txn.category:16s} | "
        f"{txn.description}{flag} | ID: {txn.id}"
    )


def subscription_line(sub: Subscription) -> str:
    status = "" if sub.is_active else " [inactive]"
    return (
        f"ID: {sub.id} | {sub.name:20s} | {sub.amount:>10,.2f} {sub.frequency.value:10s} | "
        f"Next: {sub.next_renewal_date.strftime('%Y-%m-%d')}{status}"
    )
