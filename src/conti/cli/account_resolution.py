"""CLI helpers for account resolution."""

from __future__ import annotations

from conti.domain.account import AccountService
from conti.domain.errors import NotFoundError, ValidationError


async def resolve_account(account_service: AccountService, account: str) -> str:
    """Resolve an account name or ID to an account ID.

    IDs match exactly; names match case-insensitively.

    Raises:
        NotFoundError: If nothing matches
        ValidationError: If the name matches more than one account
    """
    accounts = await account_service.list_accounts()
    for acc in accounts:
        if acc.id == account:
            return acc.id

    wanted = account.strip().lower()
    matches = [acc for acc in accounts if acc.name.lower() == wanted]
    if not matches:
        raise NotFoundError(f"Account '{account}' not found")
    if len(matches) > 1:
        ids = ", ".join(acc.id for acc in matches)
        raise ValidationError(f"Account name '{account}' is ambiguous (IDs: {ids}); use the ID")
    return matches[0].id
