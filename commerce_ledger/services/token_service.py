# Overview: Token ledger and order unlock authorizer; every balance change is an immutable transaction row.

"""
Token Ledger Service

INVARIANTS (authoritative):
- Balance = SUM(token_transactions.amount) for the user. There is no stored
  balance column that could drift.
- Every debit runs under the user's token_accounts row lock (plus the
  in-process keyed lock), so the balance check and the debit row are one
  atomic step. Two concurrent unlocks cannot both spend the same tokens.
- One OrderUnlock per order (unique). An order is charged at most once.
- Only admin adjustments may take a balance below zero.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientTokens
from ..extensions import db
from ..models import OrderUnlock, TokenTransaction, UserAccount
from ..validation import ValidationError, coerce_int, coerce_positive_int, require_text
from .app_config_service import get_app_config
from .concurrency import lock_for_update, run_with_retry, serialized

TX_UNLOCK_ORDER = "UNLOCK_ORDER"
TX_PURCHASE = "PURCHASE"
TX_ADMIN_CREDIT = "ADMIN_CREDIT"
TX_ADMIN_DEBIT = "ADMIN_DEBIT"
TX_PRO_BONUS = "PRO_BONUS"
TX_REFERRAL_BONUS = "REFERRAL_BONUS"
TX_AD_FREE = "AD_FREE"

VALID_TX_TYPES = [
    TX_UNLOCK_ORDER,
    TX_PURCHASE,
    TX_ADMIN_CREDIT,
    TX_ADMIN_DEBIT,
    TX_PRO_BONUS,
    TX_REFERRAL_BONUS,
    TX_AD_FREE,
]

MAX_TX_PAGE = 500


def user_key(user_id, field: str = "user_id") -> str:
    """User ids come from the account service as opaque strings (ints are accepted)."""
    if isinstance(user_id, int) and not isinstance(user_id, bool):
        user_id = str(user_id)
    return require_text(user_id, field, max_length=64)


def lock_account(user_id: str) -> UserAccount:
    """
    Row-lock the user's token_accounts row, creating it on first use.

    Called first thing inside a locked operation, so a new row commits or
    rolls back together with the rest of that operation.
    """
    query = db.session.query(UserAccount).filter_by(user_id=user_id)
    account = lock_for_update(query).first()
    if account is not None:
        return account
    account = UserAccount(user_id=user_id)
    db.session.add(account)
    try:
        db.session.flush()
    except IntegrityError:
        # created concurrently by another process
        db.session.rollback()
        account = lock_for_update(query).one()
    return account


def get_account(user_id) -> UserAccount | None:
    return db.session.query(UserAccount).filter_by(user_id=user_key(user_id)).first()


def _balance(user_id: str) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(TokenTransaction.amount), 0))
        .filter(TokenTransaction.user_id == user_id)
        .scalar()
    )
    return int(total or 0)


def post_transaction(user_id: str, amount: int, tx_type: str, description: str, reference: str | None = None) -> TokenTransaction:
    """Add a ledger row to the session. Caller holds the account lock and commits."""
    tx = TokenTransaction(
        user_id=user_id,
        amount=amount,
        type=tx_type,
        description=description[:255],
        reference=reference,
    )
    db.session.add(tx)
    return tx


def run_locked(user_id: str, func):
    """
    Run func() serialized per user, retrying on conflicts. func() starts with
    lock_account() and commits its own work.
    """
    with serialized("tokens", user_id):
        return run_with_retry(func)


def get_token_balance(user_id) -> int:
    return _balance(user_key(user_id))


def list_token_transactions(user_id, limit=50) -> list[dict]:
    """Newest first."""
    uid = user_key(user_id)
    limit = max(1, min(coerce_int(limit, "limit"), MAX_TX_PAGE))
    rows = (
        db.session.query(TokenTransaction)
        .filter(TokenTransaction.user_id == uid)
        .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return [tx.to_dict() for tx in rows]


def is_order_unlocked(order_id) -> bool:
    oid = user_key(order_id, "order_id")
    return db.session.query(OrderUnlock.id).filter_by(order_id=oid).first() is not None


def _unlock_result(order_id: str, user_id: str, *, charged: int, already: bool, via_plan: bool = False) -> dict:
    return {
        "order_id": order_id,
        "unlocked": True,
        "charged": charged,
        "already_unlocked": already,
        "via_plan": via_plan,
        "balance": _balance(user_id),
    }


def _existing_unlock(order_id: str, user_id: str) -> OrderUnlock | None:
    unlock = db.session.query(OrderUnlock).filter_by(order_id=order_id).first()
    if unlock is not None and unlock.user_id != user_id:
        raise ConflictError(
            "Order was unlocked by another account",
            details={"order_id": order_id},
        )
    return unlock


def unlock_order(user_id, order_id, plan_grants_full_access: bool = False, cost=None) -> dict:
    """
    Pay to reveal an order's customer contact fields.

    - already unlocked: OK, nothing charged
    - plan grants full access: OK, nothing charged or recorded
    - otherwise debit `cost` tokens (default orderUnlockCost) and record the unlock

    Raises:
        InsufficientTokens: balance < cost (nothing written)
    """
    uid = user_key(user_id)
    oid = user_key(order_id, "order_id")

    if _existing_unlock(oid, uid) is not None:
        return _unlock_result(oid, uid, charged=0, already=True)

    if plan_grants_full_access:
        return _unlock_result(oid, uid, charged=0, already=False, via_plan=True)

    if cost is None:
        cost = get_app_config()["orderUnlockCost"]
    cost = coerce_positive_int(cost, "cost")

    def _op():
        lock_account(uid)

        # re-check under the lock: a concurrent unlock may have won
        if _existing_unlock(oid, uid) is not None:
            return _unlock_result(oid, uid, charged=0, already=True)

        balance = _balance(uid)
        if balance < cost:
            raise InsufficientTokens(balance=balance, required=cost)

        post_transaction(uid, -cost, TX_UNLOCK_ORDER, f"Unlocked order {oid}", reference=oid)
        db.session.add(OrderUnlock(user_id=uid, order_id=oid, tokens_spent=cost))
        try:
            db.session.commit()
        except IntegrityError:
            # lost a race on order_id / (type, reference): both rows roll back
            db.session.rollback()
            if _existing_unlock(oid, uid) is not None:
                return _unlock_result(oid, uid, charged=0, already=True)
            raise ConflictError("Could not record order unlock", details={"order_id": oid}) from None

        current_app.logger.info("User %s unlocked order %s for %s tokens", uid, oid, cost)
        return _unlock_result(oid, uid, charged=cost, already=False)

    return run_locked(uid, _op)


def admin_adjust_tokens(user_id, amount, description, *, admin_id=None) -> int:
    """
    Manual credit (amount > 0) or debit (amount < 0). May take the balance
    negative. Returns the new balance.
    """
    uid = user_key(user_id)
    amount = coerce_int(amount, "amount")
    if amount == 0:
        raise ValidationError("amount must be non-zero")
    description = require_text(description, "description", max_length=255)

    tx_type = TX_ADMIN_CREDIT if amount > 0 else TX_ADMIN_DEBIT

    def _op():
        lock_account(uid)
        post_transaction(uid, amount, tx_type, description)
        db.session.commit()
        return _balance(uid)

    new_balance = run_locked(uid, _op)
    current_app.logger.info(
        "Admin %s adjusted tokens for %s by %+d (balance %s)", admin_id or "-", uid, amount, new_balance
    )
    return new_balance
