# Overview: Pytest coverage for the flask CLI command groups.

from commerce_ledger.services import purchase_request_service
from commerce_ledger.services import stock_service
from commerce_ledger.services import token_service


class TestStockCommands:

    def test_add_and_show(self, app, make_product):
        product = make_product(name="Mug")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["stock", "add", str(product.id), "PURCHASE", "4", "--unit-cost", "250"])
        assert result.exit_code == 0
        assert "PASS qty=4" in result.output

        result = runner.invoke(args=["stock", "show", str(product.id)])
        assert "quantity:        4" in result.output

    def test_oversell_reports_failure(self, app, make_product):
        product = make_product()
        runner = app.test_cli_runner()
        result = runner.invoke(args=["stock", "add", str(product.id), "SALE", "1"])
        assert result.exit_code == 1
        assert "FAIL Not enough units available" in result.output
        assert stock_service.get_stock_state(product.id)["movement_count"] == 0

    def test_replay(self, app, make_product):
        product = make_product()
        stock_service.append_stock_movement(product.id, "PURCHASE", 2, unit_cost=5)
        result = app.test_cli_runner().invoke(args=["stock", "replay", str(product.id)])
        assert result.exit_code == 0
        assert "PASS Replay consistent" in result.output


class TestTokenCommands:

    def test_adjust_and_balance(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["tokens", "adjust", "u1", "40", "--description", "Goodwill"])
        assert "PASS New balance for u1: 40" in result.output
        assert token_service.get_token_balance("u1") == 40

        result = runner.invoke(args=["tokens", "balance", "u1"])
        assert "u1: 40 tokens" in result.output

    def test_review(self, app, db_session):
        request_id = purchase_request_service.submit_purchase_request("u1", "small", "proof")
        result = app.test_cli_runner().invoke(args=["tokens", "review", str(request_id), "approve"])
        assert "APPROVED" in result.output
        assert token_service.get_token_balance("u1") == 100


class TestConfigCommands:

    def test_set_and_show(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["config", "set", "orderUnlockCost", "15"])
        assert "PASS orderUnlockCost updated" in result.output

        result = runner.invoke(args=["config", "show"])
        assert '"orderUnlockCost": 15' in result.output

    def test_invalid_json(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["config", "set", "orderUnlockCost", "fifteen"])
        assert result.exit_code == 1
