"""Tests for the procureflow Typer CLI commands."""

from contextlib import contextmanager

import pytest
from typer.testing import CliRunner

from procureflow import __version__
from procureflow.cli import main as cli_main
from procureflow.db.models import Item
from procureflow.services.cart_service import CartService
from procureflow.services.checkout_service import CheckoutService
from procureflow.services.conversation_service import ConversationService

runner = CliRunner()


@pytest.fixture
def cli_db(db_session, monkeypatch):
    """Point the CLI at the test session instead of the module engine."""

    @contextmanager
    def _context():
        yield db_session
        db_session.commit()

    monkeypatch.setattr(cli_main, "get_db_context", _context)
    monkeypatch.setattr(cli_main, "init_db", lambda *args, **kwargs: None)
    return db_session


class TestVersion:
    def test_prints_version(self):
        result = runner.invoke(cli_main.app, ["version"])

        assert result.exit_code == 0
        assert f"ProcureFlow v{__version__}" in result.output


class TestCatalogImport:
    def test_imports_items(self, cli_db, tmp_path):
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text(
            "- name: Whiteboard Markers\n"
            "  category: Office Supplies\n"
            "  description: Pack of twelve dry erase markers\n"
            "  price: 14.99\n"
            "- name: Laptop Stand\n"
            "  category: Electronics\n"
            "  description: Aluminium stand with adjustable height\n"
            "  price: 39.00\n"
            "  preferred_supplier: Acme\n"
        )

        result = runner.invoke(cli_main.app, ["catalog", "import", str(catalog), "--user", "admin"])

        assert result.exit_code == 0
        assert "Imported 2 item(s)" in result.output
        names = sorted(i.name for i in cli_db.query(Item).all())
        assert names == ["Laptop Stand", "Whiteboard Markers"]
        stand = cli_db.query(Item).filter(Item.name == "Laptop Stand").one()
        assert stand.preferred_supplier == "Acme"
        assert stand.created_by_user_id == "admin"

    def test_skips_invalid_and_duplicate_entries(self, cli_db, make_item, tmp_path):
        make_item(name="Laptop Stand", category="Electronics")
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text(
            "- name: Laptop Stand\n"
            "  category: Electronics\n"
            "  description: Aluminium stand with adjustable height\n"
            "  price: 39.00\n"
            "- name: X\n"
            "  category: Misc\n"
            "  description: too short\n"
            "  price: 1\n"
        )

        result = runner.invoke(cli_main.app, ["catalog", "import", str(catalog)])

        assert result.exit_code == 0
        assert "Imported 0 item(s)" in result.output
        assert "skipped 2" in result.output
        assert cli_db.query(Item).count() == 1

    def test_allow_duplicates(self, cli_db, make_item, tmp_path):
        make_item(name="Laptop Stand", category="Electronics")
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text(
            "- name: Laptop Stand\n"
            "  category: Electronics\n"
            "  description: Aluminium stand with adjustable height\n"
            "  price: 39.00\n"
        )

        result = runner.invoke(
            cli_main.app, ["catalog", "import", str(catalog), "--allow-duplicates"]
        )

        assert result.exit_code == 0
        assert cli_db.query(Item).count() == 2

    def test_rejects_non_list(self, cli_db, tmp_path):
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text("name: Laptop Stand\n")

        result = runner.invoke(cli_main.app, ["catalog", "import", str(catalog)])

        assert result.exit_code == 1
        assert "Expected a YAML list" in result.output


class TestListings:
    def test_no_conversations(self, cli_db):
        result = runner.invoke(cli_main.app, ["conversations", "alice"])

        assert result.exit_code == 0
        assert "No conversations." in result.output

    def test_conversations_json(self, cli_db):
        ConversationService(cli_db).create_conversation("alice", title="Office chairs")

        result = runner.invoke(cli_main.app, ["conversations", "alice", "--json"])

        assert result.exit_code == 0
        assert '"title": "Office chairs"' in result.output
        assert '"status": "in_progress"' in result.output

    def test_purchase_requests_table(self, cli_db, make_item):
        item = make_item(name="Monitor Arm", category="Furniture", price="120.00")
        CartService(cli_db).add_item_to_cart("alice", item.id, 2)
        pr = CheckoutService(cli_db).checkout_cart("alice")

        result = runner.invoke(cli_main.app, ["purchase-requests", "alice"])

        assert result.exit_code == 0
        assert pr.request_number in result.output
        assert "$240.00" in result.output

    def test_purchase_requests_status_filter(self, cli_db, make_item):
        item = make_item()
        CartService(cli_db).add_item_to_cart("alice", item.id, 1)
        CheckoutService(cli_db).checkout_cart("alice")

        result = runner.invoke(
            cli_main.app, ["purchase-requests", "alice", "--status", "approved"]
        )

        assert result.exit_code == 0
        assert "No purchase requests." in result.output
