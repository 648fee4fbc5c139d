"""Tests for CLI output formatting."""

import json

from procureflow.cli.output import (
    format_cart,
    format_catalog_items,
    format_conversation_table,
    format_price,
    format_purchase_request_table,
)


def _conversation(**overrides):
    row = {
        "id": "0123456789abcdef01234567",
        "title": "Standing desks",
        "last_message_preview": "Added 2 desks",
        "status": "in_progress",
        "created_at": "2026-01-05T10:00:00+00:00",
        "updated_at": "2026-01-05T10:05:00+00:00",
    }
    row.update(overrides)
    return row


def _purchase_request():
    return {
        "id": "f" * 24,
        "request_number": "PR-2026-0007",
        "status": "submitted",
        "total": 1250.5,
        "source": "agent",
        "created_at": "2026-01-05T10:06:00+00:00",
        "items": [{"item_id": "a" * 24}, {"item_id": "b" * 24}],
    }


class TestFormatPrice:
    def test_formats_dollars(self):
        assert format_price(12.5) == "$12.50"
        assert format_price(0) == "$0.00"
        assert format_price(1000) == "$1,000.00"

    def test_none_returns_dash(self):
        assert format_price(None) == "-"


class TestConversationTable:
    def test_renders_short_id_and_status(self):
        output = format_conversation_table([_conversation()])

        assert "Conversations" in output
        assert "01234567" in output
        assert "0123456789abcdef01234567" not in output
        assert "in_progress" in output

    def test_json(self):
        output = format_conversation_table([_conversation()], as_json=True)
        assert json.loads(output)[0]["title"] == "Standing desks"


class TestPurchaseRequestTable:
    def test_renders_totals_and_line_count(self):
        output = format_purchase_request_table([_purchase_request()])

        assert "PR-2026-0007" in output
        assert "$1,250.50" in output
        assert "2026-01-05T10:06:00" in output

    def test_json(self):
        output = format_purchase_request_table([_purchase_request()], as_json=True)
        assert json.loads(output)[0]["request_number"] == "PR-2026-0007"


class TestCart:
    def test_empty_cart_panel(self):
        output = format_cart({"items": [], "item_count": 0, "total_cost": 0})
        assert "Cart is empty" in output

    def test_lines_and_total(self):
        cart = {
            "items": [
                {"name": "Desk", "unit_price": 300.0, "quantity": 2, "subtotal": 600.0},
            ],
            "item_count": 2,
            "total_cost": 600.0,
        }

        output = format_cart(cart)

        assert "Cart (2 items)" in output
        assert "$300.00" in output
        assert "$600.00" in output
        assert "Total" in output


def test_catalog_items():
    output = format_catalog_items(
        [{"id": "c" * 24, "name": "Mesh Chair", "category": "Furniture", "price": 199.99}]
    )
    assert "Mesh Chair" in output
    assert "$199.99" in output
