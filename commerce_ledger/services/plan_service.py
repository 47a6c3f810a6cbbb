# Overview: Plan tier mirror and token spending on plan perks (PRO bonus, referral bonus, ad-free packs).

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientTokens
from ..extensions import db
from ..models import TokenTransaction
from ..time_utils import as_utc_naive, to_utc_z, utcnow
from ..validation import ValidationError, require_choice
from .app_config_service import get_app_config
from .token_service import (
    TX_AD_FREE,
    TX_PRO_BONUS,
    TX_REFERRAL_BONUS,
    _balance,
    get_account,
    lock_account,
    post_transaction,
    run_locked,
    user_key,
)

PLAN_FREE = "FREE"
PLAN_PRO = "PRO"
VALID_PLANS = [PLAN_FREE, PLAN_PRO]


def effective_plan(plan: str | None, expires_at: datetime | None, now: datetime | None = None) -> str:
    """PRO only while unexpired. A PRO plan without an expiry is a legacy grant and stays PRO."""
    if plan != PLAN_PRO:
        return PLAN_FREE
    if expires_at is None:
        return PLAN_PRO
    now = as_utc_naive(now) if now is not None else utcnow()
    return PLAN_PRO if as_utc_naive(expires_at) > now else PLAN_FREE


def get_effective_plan(user_id, now: datetime | None = None) -> str:
    account = get_account(user_id)
    if account is None:
        return PLAN_FREE
    return effective_plan(account.plan, account.plan_expires_at, now)


def set_user_plan(user_id, plan: str, expires_at=None) -> dict:
    """Mirror the plan tier reported by the subscription system."""
    uid = user_key(user_id)
    require_choice(plan, "plan", VALID_PLANS)
    try:
        expires = as_utc_naive(expires_at)
    except ValueError:
        raise ValidationError("expires_at must be an ISO-8601 datetime") from None

    def _op():
        account = lock_account(uid)
        account.plan = plan
        account.plan_expires_at = expires if plan == PLAN_PRO else None
        db.session.commit()
        return account.to_dict()

    return run_locked(uid, _op)


def grant_pro_bonus(user_id) -> dict | None:
    """
    Credit the PRO welcome bonus. Granted once per user; later calls return None.
    """
    uid = user_key(user_id)
    amount = get_app_config()["proBonusTokens"]

    def _op():
        account = lock_account(uid)
        if account.received_pro_bonus:
            return None
        tx = post_transaction(
            uid, amount, TX_PRO_BONUS,
            f"PRO subscription welcome bonus ({amount} tokens)",
            reference=uid,
        )
        account.received_pro_bonus = True
        db.session.commit()
        current_app.logger.info("Granted PRO bonus of %s tokens to %s", amount, uid)
        return tx.to_dict()

    return run_locked(uid, _op)


def grant_referral_bonus(user_id, referred_user_id) -> dict | None:
    """
    Credit the referrer once per referred user. A repeat for the same referred
    user returns None.
    """
    uid = user_key(user_id)
    referred = user_key(referred_user_id, "referred_user_id")
    if referred == uid:
        raise ValidationError("A user cannot refer themselves")
    amount = get_app_config()["referralBonusTokens"]

    def _already_granted() -> bool:
        return (
            db.session.query(TokenTransaction.id)
            .filter_by(type=TX_REFERRAL_BONUS, reference=referred)
            .first()
            is not None
        )

    def _op():
        lock_account(uid)
        if _already_granted():
            current_app.logger.warning("Referral bonus for %s already granted", referred)
            return None
        tx = post_transaction(
            uid, amount, TX_REFERRAL_BONUS,
            f"Referral bonus ({amount} tokens)",
            reference=referred,
        )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return None
        current_app.logger.info("Granted referral bonus of %s tokens to %s for %s", amount, uid, referred)
        return tx.to_dict()

    return run_locked(uid, _op)


def purchase_ad_free_pack(user_id, pack_id: str, now: datetime | None = None) -> dict:
    """
    Spend tokens on an ad-free window. Time stacks on an unexpired window.

    Raises:
        ValidationError: unknown pack
        InsufficientTokens: balance below the pack cost (nothing written)
    """
    uid = user_key(user_id)
    packs = get_app_config()["adFreePacks"]
    if pack_id not in packs:
        raise ValidationError(f"Invalid pack. Must be one of {sorted(packs)}")
    cost = packs[pack_id]["cost"]
    days = packs[pack_id]["days"]

    def _op():
        account = lock_account(uid)
        balance = _balance(uid)
        if balance < cost:
            raise InsufficientTokens(balance=balance, required=cost)

        current = as_utc_naive(now) if now is not None else utcnow()
        base = account.ad_free_until
        if base is None or as_utc_naive(base) <= current:
            base = current
        account.ad_free_until = as_utc_naive(base) + timedelta(days=days)

        post_transaction(uid, -cost, TX_AD_FREE, f"Ad-free {pack_id} ({days} days)")
        db.session.commit()
        current_app.logger.info("User %s bought ad-free %s until %s", uid, pack_id, account.ad_free_until)
        return {
            "pack_id": pack_id,
            "ad_free_until": to_utc_z(account.ad_free_until),
            "balance": _balance(uid),
        }

    return run_locked(uid, _op)


def get_ad_free_status(user_id, now: datetime | None = None) -> dict:
    account = get_account(user_id)
    until = account.ad_free_until if account is not None else None
    current = as_utc_naive(now) if now is not None else utcnow()
    active = until is not None and as_utc_naive(until) > current
    return {
        "ad_free": active,
        "ad_free_until": to_utc_z(until) if active else None,
    }


__all__ = [
    "PLAN_FREE",
    "PLAN_PRO",
    "effective_plan",
    "get_effective_plan",
    "set_user_plan",
    "grant_pro_bonus",
    "grant_referral_bonus",
    "purchase_ad_free_pack",
    "get_ad_free_status",
]
