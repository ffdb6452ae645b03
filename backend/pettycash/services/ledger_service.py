# Overview: Fund-balance ledger; the only code path that mutates Balance rows.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientBalance, InvalidAmount, ValidationError
from ..extensions import db
from ..models import Balance, FundTransfer, Transaction
from ..models.expenses import ACCOUNT_TYPES, COMMITTED_STATUSES
from ..models.funds import TRANSFER_STATUS_COMPLETED, TRANSFER_TYPE_CASH
from ..validation import cents_to_str
from pettycash.time_utils import utcnow

"""
Ledger invariants (authoritative)

- current_balance_cents == total_received_cents - total_spent_cents, always.
- current_balance_cents never goes below zero.
- Deductions are a single conditional UPDATE guarded by
  current_balance_cents >= amount, so two writers working from the same stale
  read cannot both succeed. The CHECK constraint on balances is the backstop.
- Ledger functions do not commit. They run inside the caller's unit of work,
  so a failure later in that unit rolls the mutation back with it.
"""


def _require_account(account_type: str) -> str:
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"Unknown account type: {account_type}")
    return account_type


def _require_positive(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmount("Amount must be an integer number of cents")
    if amount_cents <= 0:
        raise InvalidAmount("Amount must be greater than 0")
    return amount_cents


def ensure_balance(account_type: str) -> Balance:
    """Return the balance row for an account, creating an empty one on first use."""
    _require_account(account_type)
    balance = db.session.query(Balance).filter_by(account_type=account_type).first()
    if balance:
        return balance

    balance = Balance(
        account_type=account_type,
        current_balance_cents=0,
        total_received_cents=0,
        total_spent_cents=0,
        version=0,
        last_updated=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(balance)
    except IntegrityError:
        # Another writer created it first
        balance = db.session.query(Balance).filter_by(account_type=account_type).one()
    return balance


def add_funds(account_type: str, amount_cents: int, acting_user_id: int | None) -> Balance:
    """
    Credit an account.

    Increments current and total_received by the same amount and bumps version.
    Raises InvalidAmount if amount_cents <= 0.
    """
    _require_positive(amount_cents)
    ensure_balance(account_type)

    stmt = (
        update(Balance)
        .where(Balance.account_type == account_type)
        .values(
            current_balance_cents=Balance.current_balance_cents + amount_cents,
            total_received_cents=Balance.total_received_cents + amount_cents,
            version=Balance.version + 1,
            last_updated=utcnow(),
            updated_by_user_id=acting_user_id,
        )
        .execution_options(synchronize_session="fetch")
    )
    db.session.execute(stmt)

    balance = get_balance(account_type, refresh=True)
    current_app.logger.info(
        "Ledger credit %s on %s by user %s (balance now %s)",
        cents_to_str(amount_cents), account_type, acting_user_id, cents_to_str(balance.current_balance_cents),
    )
    return balance


def deduct_funds(account_type: str, amount_cents: int, acting_user_id: int | None) -> Balance:
    """
    Debit an account.

    WHY conditional UPDATE: the floor check and the decrement happen in one
    statement. If another writer already spent the money, rowcount is 0 and
    InsufficientBalance is raised; the row is never left negative.
    """
    _require_positive(amount_cents)
    ensure_balance(account_type)

    stmt = (
        update(Balance)
        .where(
            Balance.account_type == account_type,
            Balance.current_balance_cents >= amount_cents,
        )
        .values(
            current_balance_cents=Balance.current_balance_cents - amount_cents,
            total_spent_cents=Balance.total_spent_cents + amount_cents,
            version=Balance.version + 1,
            last_updated=utcnow(),
            updated_by_user_id=acting_user_id,
        )
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)

    balance = get_balance(account_type, refresh=True)
    if not result.rowcount:
        current_app.logger.warning(
            "Ledger debit of %s on %s refused: balance %s",
            cents_to_str(amount_cents), account_type, cents_to_str(balance.current_balance_cents),
        )
        raise InsufficientBalance(
            f"Insufficient balance in {account_type}",
            account_type=account_type,
            available=cents_to_str(balance.current_balance_cents),
            requested=cents_to_str(amount_cents),
        )

    current_app.logger.info(
        "Ledger debit %s on %s by user %s (balance now %s)",
        cents_to_str(amount_cents), account_type, acting_user_id, cents_to_str(balance.current_balance_cents),
    )
    return balance


def get_balance(account_type: str, *, refresh: bool = False) -> Balance:
    balance = ensure_balance(account_type)
    if refresh:
        db.session.refresh(balance)
    return balance


def committed_cents(account_type: str) -> int:
    """Sum of submitted-but-undecided expenses drawing on this account."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(Transaction.resolved_amount_cents), 0))
        .filter(
            Transaction.account_type == account_type,
            Transaction.status.in_(COMMITTED_STATUSES),
        )
        .scalar()
    )
    return int(total or 0)


def current_available(account_type: str) -> int:
    """
    current balance minus committed expenses, in cents.

    Recomputed from the transaction table on every call, never cached.
    May be negative when more is in flight than is on hand.
    """
    balance = get_balance(_require_account(account_type))
    return balance.current_balance_cents - committed_cents(account_type)


def get_balance_overview() -> dict:
    accounts = []
    total_current = 0
    total_available = 0
    for account_type in ACCOUNT_TYPES:
        balance = get_balance(account_type)
        committed = committed_cents(account_type)
        available = balance.current_balance_cents - committed
        total_current += balance.current_balance_cents
        total_available += available
        row = balance.to_dict()
        row["committed"] = cents_to_str(committed)
        row["available"] = cents_to_str(available)
        accounts.append(row)

    return {
        "accounts": accounts,
        "total_current": cents_to_str(total_current),
        "total_available": cents_to_str(total_available),
    }


def reconcile(account_type: str, counted_actual_cents: int | None = None) -> dict:
    """
    Compare the ledger with its sources and, optionally, a physical count.

    Checks:
    - current == received - spent
    - total_received == sum of completed fund transfers into the account
    - total_spent == sum of ledger-debited expenses on the account
    - counted_actual vs current (discrepancy, when a count is supplied)

    Deleted transactions with explicit compensation legitimately move
    received/spent away from the source sums; the report shows the deltas
    rather than failing.
    """
    balance = get_balance(_require_account(account_type))

    transfer_type = TRANSFER_TYPE_CASH if account_type == "petty_cash_physical" else "bank"
    transferred = (
        db.session.query(db.func.coalesce(db.func.sum(FundTransfer.amount_cents), 0))
        .filter(
            FundTransfer.transfer_type == transfer_type,
            FundTransfer.status == TRANSFER_STATUS_COMPLETED,
        )
        .scalar()
    ) or 0
    debited = (
        db.session.query(db.func.coalesce(db.func.sum(Transaction.resolved_amount_cents), 0))
        .filter(
            Transaction.account_type == account_type,
            Transaction.ledger_debited.is_(True),
        )
        .scalar()
    ) or 0

    arithmetic_ok = balance.current_balance_cents == balance.total_received_cents - balance.total_spent_cents
    received_delta = balance.total_received_cents - int(transferred)
    spent_delta = balance.total_spent_cents - int(debited)

    report = {
        "account_type": account_type,
        "current_balance": cents_to_str(balance.current_balance_cents),
        "total_received": cents_to_str(balance.total_received_cents),
        "total_spent": cents_to_str(balance.total_spent_cents),
        "transfers_total": cents_to_str(int(transferred)),
        "debited_expenses_total": cents_to_str(int(debited)),
        "committed": cents_to_str(committed_cents(account_type)),
        "available": cents_to_str(balance.current_balance_cents - committed_cents(account_type)),
        "checks": {
            "balance_arithmetic": arithmetic_ok,
            "received_matches_transfers": received_delta == 0,
            "spent_matches_expenses": spent_delta == 0,
        },
        "received_delta": cents_to_str(received_delta),
        "spent_delta": cents_to_str(spent_delta),
        "counted_actual": None,
        "discrepancy": None,
        "reconciled_at": utcnow().isoformat() + "Z",
    }

    if counted_actual_cents is not None:
        discrepancy = counted_actual_cents - balance.current_balance_cents
        report["counted_actual"] = cents_to_str(counted_actual_cents)
        report["discrepancy"] = cents_to_str(discrepancy)
        report["checks"]["counted_matches_ledger"] = discrepancy == 0

    report["is_consistent"] = all(report["checks"].values())
    return report
