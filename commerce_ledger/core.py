"""
In-process entry points for the request-handling layer.

Pure operations (variant resolution, promotion evaluation, pricing) need no
application context. Ledger operations must run inside one, e.g.::

    app = create_app()
    with app.app_context():
        append_stock_movement(product_id, "PURCHASE", 10, unit_cost=100)
"""
from .errors import (  # noqa: F401
    AlreadyReviewed,
    ConflictError,
    InsufficientStock,
    InsufficientTokens,
    LedgerError,
    NotFoundError,
    PendingRequestExists,
    StorageUnavailable,
    ValidationError,
)
from .services.pricing_service import compute_pricing, price_order  # noqa: F401
from .services.promotions_service import evaluate_promotions as evaluate_promotion  # noqa: F401
from .services.purchase_request_service import (  # noqa: F401
    list_purchase_requests,
    review_purchase_request,
    submit_purchase_request,
)
from .services.stock_service import (  # noqa: F401
    append_stock_movement,
    get_stock_state,
    list_stock_movements,
    record_order_return,
    record_order_sale,
    replay_stock_state,
)
from .services.token_service import (  # noqa: F401
    admin_adjust_tokens,
    get_token_balance,
    is_order_unlocked,
    unlock_order,
)
from .services.variants_service import resolve_variant_price  # noqa: F401
