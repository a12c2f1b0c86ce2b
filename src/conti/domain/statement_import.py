"""Statement import domain service."""

import asyncio
import hashlib
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from conti.database.base import Database
from conti.domain.entities import ParsedTransaction, TransactionDraft, TransactionType
from conti.domain.errors import (
    DomainError,
    ImportAborted,
    NotFoundError,
    StoreError,
    account_not_found,
    import_has_row_errors,
    import_is_empty,
)
from conti.domain.identity import IdentityProvider, require_user
from conti.domain.results import Err, Ok, Result
from conti.domain.statement_parser import StatementParser
from conti.domain.transaction import TransactionService
from conti.logging_config import get_logger
from conti.utils.amount_parser import quantize_amount
from conti.utils.date_parser import start_of_day

logger = get_logger(__name__)


class ImportMode(str, Enum):
    """How imported rows combine with what the account already holds."""

    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of a successful import."""

    imported: int
    skipped: int
    balance_delta: Decimal
    mode: ImportMode


def natural_key(candidate: ParsedTransaction, occurrence: int) -> str:
    """Stable key identifying a statement row across repeated imports.

    ``occurrence`` tells apart identical rows within the same statement.
    """
    material = "|".join(
        (
            candidate.date.isoformat(),
            candidate.description,
            str(candidate.amount),
            str(occurrence),
        )
    )
    return "stmt:" + hashlib.sha256(material.encode("utf-8")).hexdigest()[:32]


def to_drafts(candidates: tuple[ParsedTransaction, ...]) -> list[TransactionDraft]:
    """Convert parsed rows into canonical drafts with natural keys."""
    seen: Counter = Counter()
    drafts = []
    for candidate in candidates:
        identity = (candidate.date, candidate.description, candidate.amount)
        occurrence = seen[identity]
        seen[identity] += 1
        drafts.append(
            TransactionDraft(
                account_id=candidate.account_id,
                amount=candidate.amount,
                description=candidate.description,
                category=candidate.category,
                date=start_of_day(candidate.date),
                type=TransactionType.from_amount(candidate.amount),
                notes=candidate.notes,
                unique_id=natural_key(candidate, occurrence),
            )
        )
    return drafts


def _total(drafts: list[TransactionDraft]) -> Decimal:
    return quantize_amount(sum((d.amount for d in drafts), Decimal("0")))


class StatementImportService:
    """Service for importing bank statement spreadsheets into an account."""

    def __init__(
        self,
        db: Database,
        identity: IdentityProvider,
        parser: Optional[StatementParser] = None,
    ):
        """Initialize statement import service.

        Args:
            db: Database instance
            identity: Provider of the current user id
            parser: Statement parser, a default one when omitted
        """
        self.db = db
        self.identity = identity
        self.parser = parser or StatementParser()
        self.transaction_service = TransactionService(db, identity)

    async def import_statement(
        self, file_path: str, account_id: str, mode: ImportMode = ImportMode.APPEND
    ) -> Result[ImportSummary]:
        """Import a statement file into an account.

        The file is imported entirely or not at all: a single unreadable row
        aborts the import before anything is written. In APPEND mode rows
        already imported earlier are skipped; REPLACE drops every existing
        transaction of the account first. The balance then moves by the net
        change.

        Args:
            file_path: Path to the .xlsx or .xls statement
            account_id: Account receiving the transactions
            mode: APPEND (default) or REPLACE

        Returns:
            Ok(ImportSummary) or Err carrying the reason; ImportAborted
            errors list every row that could not be read
        """
        try:
            user_id = require_user(self.identity)
            return await self._import(user_id, file_path, account_id, ImportMode(mode))
        except DomainError as e:
            return Err(e)

    async def _import(
        self, user_id: str, file_path: str, account_id: str, mode: ImportMode
    ) -> Result[ImportSummary]:
        log = logger.bind(user_id=user_id, account_id=account_id, file=str(file_path), mode=mode.value)
        if await self.db.get_account(user_id, account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        parsed = await asyncio.to_thread(self.parser.parse, file_path, account_id)
        if parsed.has_errors:
            log.warning("statement_import_aborted", errors=len(parsed.errors))
            return Err(ImportAborted(import_has_row_errors(len(parsed.errors)), parsed.errors))
        if not parsed.transactions:
            log.warning("statement_import_aborted", errors=0, reason="empty")
            return Err(ImportAborted(import_is_empty()))

        drafts = to_drafts(parsed.transactions)
        skipped = 0
        if mode == ImportMode.APPEND:
            existing = await self.transaction_service.existing_unique_ids(
                account_id, [d.unique_id for d in drafts]
            )
            fresh = [d for d in drafts if d.unique_id not in existing]
            skipped = len(drafts) - len(fresh)
            imported = await self.transaction_service.add_transactions_batch(fresh)
            delta = _total(fresh)
        else:
            removed_total, imported = await self.transaction_service.replace_account_transactions(
                account_id, drafts
            )
            delta = quantize_amount(_total(drafts) - removed_total)

        log.info("statement_imported", imported=imported, skipped=skipped, balance_delta=str(delta))

        if delta != 0:
            try:
                await self.transaction_service.adjust_balance(account_id, delta)
            except DomainError as e:
                log.error("statement_balance_update_failed", imported=imported, error=str(e))
                failure = StoreError(
                    f"Imported {imported} transactions but the balance update failed: {e}. "
                    "Run a balance reconciliation to repair it."
                )
                failure.__cause__ = e
                return Err(failure)

        return Ok(ImportSummary(imported=imported, skipped=skipped, balance_delta=delta, mode=mode))
