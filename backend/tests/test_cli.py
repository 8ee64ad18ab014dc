"""
CLI Tests

Runs the Flask command groups through app.test_cli_runner().
"""

import pytest

from bizdesk.services import catalog_service, ledger_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemCommands:

    def test_init_db_is_idempotent(self, runner, db_session):
        result = runner.invoke(args=["system", "init-db"])

        assert result.exit_code == 0
        assert "Database schema ready" in result.output


class TestInventoryCommands:

    def test_low_stock_empty(self, runner, db_session, product):
        result = runner.invoke(args=["inventory", "low-stock", "--account", "acme"])

        assert result.exit_code == 0
        assert "No low-stock products." in result.output

    def test_low_stock_lists_products(self, runner, db_session, clerk):
        catalog_service.create_product(clerk, name="Sardines", box_to_kg_ratio=10, quantity_box=2)

        result = runner.invoke(args=["inventory", "low-stock", "--account", "acme"])

        assert "Sardines" in result.output

    def test_blank_account_is_usage_error(self, runner, db_session):
        result = runner.invoke(args=["inventory", "low-stock", "--account", " "])
        assert result.exit_code == 2

    def test_refresh_days_left_all_accounts(self, runner, db_session):
        result = runner.invoke(args=["inventory", "refresh-days-left"])

        assert result.exit_code == 0
        assert "Updated days_left on 0 product(s)" in result.output


class TestApprovalCommands:

    def test_pending_lists_damage(self, runner, db_session, clerk, product):
        ledger_service.record_damage(clerk, product.id, 1, 0, "crushed")

        result = runner.invoke(args=["approvals", "pending", "--account", "acme"])

        assert result.exit_code == 0
        assert "damage" in result.output
        assert "Frozen Tilapia" in result.output

    def test_pending_empty_for_other_account(self, runner, db_session, clerk, product):
        ledger_service.record_damage(clerk, product.id, 1, 0, "crushed")

        result = runner.invoke(args=["approvals", "pending", "--account", "globex"])

        assert "Nothing pending." in result.output


class TestReportCommands:

    def test_general_report_prints_json(self, runner, db_session, clerk, product):
        ledger_service.record_restock(clerk, product.id, 5, 0)

        result = runner.invoke(args=["reports", "general", "--account", "acme", "--start", "2000-01-01"])

        assert result.exit_code == 0
        # Log lines share the captured stream; check the JSON body by content
        assert '"product_name": "Frozen Tilapia"' in result.output
        assert '"boxes": 5.0' in result.output

    def test_bad_window_fails(self, runner, db_session):
        result = runner.invoke(
            args=["reports", "general", "--account", "acme", "--start", "2026-02-01", "--end", "2026-01-01"]
        )

        assert result.exit_code != 0
        assert "start must be on or before end" in result.output
