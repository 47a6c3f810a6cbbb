# Overview: Flask CLI command groups for schema bootstrap, stock ledger, tokens and economy settings.

# commerce_ledger/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=commerce_ledger (the create_app factory is discovered).
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask ledger init-db
#   Create all tables (dev / tests). Production uses: python -m flask db upgrade
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Products:
# - python -m flask products create --name "Mug" --price 1200 --valuation FIFO
# - python -m flask products list
#
# Stock ledger:
# - python -m flask stock add 1 PURCHASE 10 --unit-cost 100
# - python -m flask stock add 1 ADJUSTMENT --note "breakage" -- -2
# - python -m flask stock show 1
# - python -m flask stock movements 1 --limit 20
# - python -m flask stock replay 1
#   Recompute state from scratch and compare against movement snapshots.
#
# Tokens:
# - python -m flask tokens balance USER_ID
# - python -m flask tokens adjust USER_ID 50 --description "Goodwill credit"
# - python -m flask tokens requests --status PENDING
# - python -m flask tokens review 7 approve
# - python -m flask tokens review 7 reject --reason "Proof unreadable"
#
# Economy settings:
# - python -m flask config show
# - python -m flask config set orderUnlockCost 15
#   Value is parsed as JSON: config set tokenPacks '{"small": {"tokens": 150}}'

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import app_config_service
from .services import products_service
from .services import purchase_request_service
from .services import stock_service
from .services import token_service
from .services.valuation import VALID_MOVEMENT_TYPES, VALID_VALUATION_METHODS


def _fail(exc: LedgerError) -> None:
    click.echo(f"FAIL {exc.message}")
    for key, value in exc.details.items():
        click.echo(f"     {key}: {value}")
    raise SystemExit(1)


# =============================================================================
# SCHEMA
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Schema bootstrap commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    app_config_service.clear_cache()

    click.echo("PASS Database reset complete.")


# =============================================================================
# PRODUCTS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--name', required=True)
@click.option('--sku', default=None)
@click.option('--price', default=None, help='Base price in DA (omit for "contact for price")')
@click.option('--shipping', default=None, help='Shipping fee in DA')
@click.option('--valuation', type=click.Choice(VALID_VALUATION_METHODS), default='WEIGHTED_AVERAGE')
@click.option('--no-track-stock', is_flag=True)
@with_appcontext
def create_product_cli(name, sku, price, shipping, valuation, no_track_stock):
    """Create a product."""
    patch = {"name": name, "sku": sku, "base_price": price, "valuation_method": valuation,
             "track_stock": not no_track_stock}
    if shipping is not None:
        patch["shipping_fee"] = shipping
    try:
        product = products_service.create_product(patch)
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, valuation: {product.valuation_method})")


@products_group.command('list')
@with_appcontext
def list_products_cli():
    """List all products."""
    products = products_service.list_products()
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Price':<12} {'Valuation':<18} {'Tracked'}")
    click.echo("="*80)
    for p in products:
        tracked = "Yes" if p["track_stock"] else "No"
        click.echo(f"{p['id']:<5} {p['name'][:30]:<30} {p['base_price'] or '-':<12} {p['valuation_method']:<18} {tracked}")
    click.echo("="*80 + "\n")


# =============================================================================
# STOCK LEDGER
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('add')
@click.argument('product_id', type=int)
@click.argument('movement_type', type=click.Choice(VALID_MOVEMENT_TYPES))
@click.argument('quantity', type=int)
@click.option('--unit-cost', default=None, help='Unit cost in DA (required for PURCHASE)')
@click.option('--note', default=None)
@click.option('--reference', default=None)
@with_appcontext
def add_movement_cli(product_id, movement_type, quantity, unit_cost, note, reference):
    """Append a stock movement."""
    try:
        state = stock_service.append_stock_movement(
            product_id, movement_type, quantity, unit_cost=unit_cost, note=note, reference=reference
        )
    except LedgerError as exc:
        _fail(exc)
    if state["duplicate"]:
        click.echo(f"WARN Movement already recorded for reference {reference}")
    click.echo(f"PASS qty={state['quantity']} unit_cost={state['unit_cost']} status={state['status']}")


@stock_group.command('show')
@click.argument('product_id', type=int)
@with_appcontext
def show_stock_cli(product_id):
    """Show current stock state."""
    try:
        state = stock_service.get_stock_state(product_id)
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"Product {product_id} ({state['valuation_method']})")
    click.echo(f"  quantity:        {state['quantity']}")
    click.echo(f"  unit cost:       {state['unit_cost'] if state['unit_cost'] is not None else '-'}")
    click.echo(f"  inventory value: {state['inventory_value'] if state['inventory_value'] is not None else '-'}")
    click.echo(f"  status:          {state['status']}")
    click.echo(f"  movements:       {state['movement_count']}")
    for lot in state.get("lots", []):
        click.echo(f"    lot {lot['quantity']} @ {lot['unit_cost']}")


@stock_group.command('movements')
@click.argument('product_id', type=int)
@click.option('--limit', type=int, default=20)
@with_appcontext
def list_movements_cli(product_id, limit):
    """List recent movements, newest first."""
    try:
        rows = stock_service.list_stock_movements(product_id, limit=limit)
    except LedgerError as exc:
        _fail(exc)
    if not rows:
        click.echo("No movements found.")
        return
    for mv in rows:
        click.echo(
            f"{mv['id']:<6} {mv['created_at']}  {mv['type']:<11} {mv['quantity_delta']:>+6} "
            f"@ {mv['unit_cost'] or '-':<12} -> {mv['quantity_after']} @ {mv['unit_cost_after'] or '-'}"
        )


@stock_group.command('replay')
@click.argument('product_id', type=int)
@with_appcontext
def replay_stock_cli(product_id):
    """Audit: recompute state from scratch and compare with stored snapshots."""
    try:
        result = stock_service.replay_stock_state(product_id)
    except LedgerError as exc:
        _fail(exc)
    if result["consistent"]:
        click.echo(f"PASS Replay consistent: qty={result['quantity']} unit_cost={result['unit_cost']}")
        return
    click.echo(f"FAIL {len(result['mismatches'])} movement(s) disagree with replay")
    for m in result["mismatches"]:
        click.echo(f"     movement {m['movement_id']}: recorded {m['recorded']} replayed {m['replayed']}")
    raise SystemExit(1)


# =============================================================================
# TOKENS
# =============================================================================

@click.group('tokens')
def tokens_group():
    """Token ledger commands."""


@tokens_group.command('balance')
@click.argument('user_id')
@click.option('--history', is_flag=True, help='Also list recent transactions')
@with_appcontext
def balance_cli(user_id, history):
    """Show a user's token balance."""
    click.echo(f"{user_id}: {token_service.get_token_balance(user_id)} tokens")
    if history:
        for tx in token_service.list_token_transactions(user_id, limit=20):
            click.echo(f"  {tx['created_at']}  {tx['type']:<15} {tx['amount']:>+6}  {tx['description'] or ''}")


@tokens_group.command('adjust')
@click.argument('user_id')
@click.argument('amount', type=int)
@click.option('--description', required=True)
@with_appcontext
def adjust_cli(user_id, amount, description):
    """Credit (positive) or debit (negative) tokens manually."""
    try:
        balance = token_service.admin_adjust_tokens(user_id, amount, description, admin_id="cli")
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"PASS New balance for {user_id}: {balance}")


@tokens_group.command('requests')
@click.option('--status', type=click.Choice(purchase_request_service.VALID_STATUSES), default=None)
@click.option('--user-id', default=None)
@with_appcontext
def list_requests_cli(status, user_id):
    """List token purchase requests."""
    rows = purchase_request_service.list_purchase_requests(status=status, user_id=user_id)
    if not rows:
        click.echo("No purchase requests found.")
        return
    for r in rows:
        click.echo(
            f"{r['id']:<6} {r['user_id']:<20} {r['pack_id']:<8} {r['tokens']:>6} tokens "
            f"{r['price_da']:>7} DA  {r['status']:<9} {r['created_at']}"
        )


@tokens_group.command('review')
@click.argument('request_id', type=int)
@click.argument('action', type=click.Choice(['approve', 'reject']))
@click.option('--reason', default=None)
@with_appcontext
def review_cli(request_id, action, reason):
    """Approve or reject a pending purchase request."""
    try:
        req = purchase_request_service.review_purchase_request(request_id, action, reason)
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"PASS Request {req['id']} {req['status']} ({req['tokens']} tokens)")


# =============================================================================
# ECONOMY SETTINGS
# =============================================================================

@click.group('config')
def config_group():
    """Admin-editable economy settings."""


@config_group.command('show')
@with_appcontext
def show_config_cli():
    """Print the effective settings as JSON."""
    click.echo(json.dumps(app_config_service.get_app_config(), indent=2, sort_keys=True))


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_config_cli(key, value):
    """Set one top-level key. VALUE is parsed as JSON."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        click.echo("FAIL VALUE must be valid JSON")
        raise SystemExit(1)
    try:
        app_config_service.update_app_config({key: parsed}, updated_by="cli")
    except LedgerError as exc:
        _fail(exc)
    click.echo(f"PASS {key} updated")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(config_group)
