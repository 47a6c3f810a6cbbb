# Overview: Manual token purchase workflow; users submit payment proof, admins approve or reject.

"""
Token Purchase Requests

LIFECYCLE: PENDING -> APPROVED | REJECTED (terminal).

- At most one PENDING request per user: checked under the account lock and
  backed by a partial unique index.
- Approval credits the tokens of the pack for the user's plan AT APPROVAL
  TIME (PRO pack sizes when PRO) and records that amount on the request.
- Reviewing a request twice raises AlreadyReviewed and writes nothing.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyReviewed, NotFoundError, PendingRequestExists
from ..extensions import db
from ..models import TokenPurchaseRequest
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_int, optional_text, require_choice, require_text
from .app_config_service import build_token_packs
from .concurrency import lock_for_update
from .plan_service import PLAN_PRO, get_effective_plan
from .token_service import TX_PURCHASE, lock_account, post_transaction, run_locked, user_key

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
VALID_STATUSES = [STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED]

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"


def _packs_for(user_id: str) -> dict:
    packs, pro_packs = build_token_packs()
    return pro_packs if get_effective_plan(user_id) == PLAN_PRO else packs


def _pending_for(user_id: str) -> TokenPurchaseRequest | None:
    return (
        db.session.query(TokenPurchaseRequest)
        .filter_by(user_id=user_id, status=STATUS_PENDING)
        .first()
    )


def submit_purchase_request(user_id, pack_id, proof_ref) -> int:
    """
    File a purchase request for a token pack. Returns the request id.

    proof_ref is an opaque reference to the uploaded payment proof.

    Raises:
        ValidationError: unknown pack or missing proof
        PendingRequestExists: the user already has a request under review
    """
    uid = user_key(user_id)
    proof_ref = require_text(proof_ref, "proof_ref", max_length=512)

    packs, _ = build_token_packs()
    if pack_id not in packs:
        raise ValidationError("Invalid pack ID", details={"pack_id": pack_id, "valid": sorted(packs)})

    def _op():
        lock_account(uid)
        pending = _pending_for(uid)
        if pending is not None:
            raise PendingRequestExists(request_id=pending.id)

        request = TokenPurchaseRequest(
            user_id=uid,
            pack_id=pack_id,
            tokens=_packs_for(uid)[pack_id]["tokens"],
            price_da=packs[pack_id]["priceDA"],
            proof_ref=proof_ref,
            status=STATUS_PENDING,
        )
        db.session.add(request)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            pending = _pending_for(uid)
            raise PendingRequestExists(request_id=pending.id if pending else None) from None

        current_app.logger.info("Token purchase request %s submitted by %s (%s)", request.id, uid, pack_id)
        return request.id

    return run_locked(uid, _op)


def get_purchase_request(request_id) -> TokenPurchaseRequest:
    rid = coerce_int(request_id, "request_id")
    request = db.session.get(TokenPurchaseRequest, rid)
    if request is None:
        raise NotFoundError("Token purchase not found", details={"request_id": rid})
    return request


def review_purchase_request(request_id, action, reason=None) -> dict:
    """
    Approve or reject a PENDING request.

    Raises:
        ValidationError: action not approve / reject
        NotFoundError: unknown request
        AlreadyReviewed: request is no longer PENDING
    """
    require_choice(action, "action", [ACTION_APPROVE, ACTION_REJECT])
    reason = optional_text(reason, "reason", max_length=255)
    request = get_purchase_request(request_id)
    rid = request.id
    uid = request.user_id

    def _op():
        lock_account(uid)
        req = lock_for_update(db.session.query(TokenPurchaseRequest).filter_by(id=rid)).one()
        if req.status != STATUS_PENDING:
            current_app.logger.warning(
                "Purchase request %s already reviewed (status %s)", rid, req.status
            )
            raise AlreadyReviewed(request_id=rid, status=req.status)

        req.reviewed_at = utcnow()
        if action == ACTION_APPROVE:
            pack = _packs_for(uid).get(req.pack_id)
            tokens = pack["tokens"] if pack else req.tokens
            req.status = STATUS_APPROVED
            req.tokens = tokens
            post_transaction(
                uid, tokens, TX_PURCHASE,
                f"Purchased {req.pack_id} token pack (+{tokens} tokens)",
                reference=f"request:{rid}",
            )
        else:
            req.status = STATUS_REJECTED
            req.rejection_reason = reason

        db.session.commit()
        current_app.logger.info("Purchase request %s %s", rid, req.status.lower())
        return req.to_dict()

    return run_locked(uid, _op)


def list_purchase_requests(status=None, user_id=None) -> list[dict]:
    """Newest first, optionally filtered by status and / or user."""
    query = db.session.query(TokenPurchaseRequest)
    if status is not None:
        require_choice(status, "status", VALID_STATUSES)
        query = query.filter(TokenPurchaseRequest.status == status)
    if user_id is not None:
        query = query.filter(TokenPurchaseRequest.user_id == user_key(user_id))
    rows = query.order_by(TokenPurchaseRequest.created_at.desc(), TokenPurchaseRequest.id.desc()).all()
    return [r.to_dict() for r in rows]
