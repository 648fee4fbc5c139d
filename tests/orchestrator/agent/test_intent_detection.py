"""Tests for the heuristic intent router."""

from decimal import Decimal

import pytest

from procureflow.orchestrator.agent.intent_detection import (
    CLARIFY_ADD,
    extract_item_id,
    extract_max_price,
    extract_quantity,
    extract_register_fields,
    extract_search_keywords,
    is_confirmation_response,
    resolve_intent,
)
from procureflow.orchestrator.models.intent import (
    AddToCartIntent,
    AnalyzeCartIntent,
    ChatIntent,
    CheckoutIntent,
    ClarifyIntent,
    ItemDetailsIntent,
    RegisterItemIntent,
    RemoveFromCartIntent,
    SearchIntent,
    UpdateCartQuantityIntent,
    ViewCartIntent,
)

ITEM_ID = "65f0c2a1b3d4e5f6a7b8c9d0"


class TestExtractors:
    def test_hex_id_lowercased(self):
        assert extract_item_id(f"item {ITEM_ID.upper()} please") == ITEM_ID

    def test_labelled_id(self):
        assert extract_item_id("add item: chair-42 to cart") == "chair-42"

    def test_no_id(self):
        assert extract_item_id("add the red chair") is None

    @pytest.mark.parametrize(
        "text,expected",
        [("quantity: 3", 3), ("qty 4", 4), ("5 x", 5), ("2×", 2), ("no number", None)],
    )
    def test_quantity(self, text, expected):
        assert extract_quantity(text) == expected

    def test_max_price(self):
        assert extract_max_price("laptops under $1500") == Decimal("1500")
        assert extract_max_price("pens below 2.50") == Decimal("2.50")
        assert extract_max_price("laptops") is None

    def test_max_price_with_thousands_separator(self):
        assert extract_max_price("chairs under $1,500") == Decimal("1500")
        assert extract_max_price("servers below 12,000.50") == Decimal("12000.50")

    def test_search_keywords(self):
        assert extract_search_keywords("Find me laptops under $1500") == "laptops"
        assert extract_search_keywords("search in the catalog for standing desks") == "standing desks"

    def test_register_fields(self):
        fields = extract_register_fields(
            "register item name: Desk Lamp, category: Lighting, price: 25, "
            "description: LED lamp with USB port"
        )
        assert fields == {
            "name": "Desk Lamp",
            "category": "Lighting",
            "price": "25",
            "description": "LED lamp with USB port",
        }


class TestConfirmation:
    @pytest.mark.parametrize("text", ["yes", "Yes!", "  OK ", "go ahead", "confirm checkout."])
    def test_confirmations(self, text):
        assert is_confirmation_response(text)

    @pytest.mark.parametrize("text", ["", None, "yes but change the quantity", "no"])
    def test_not_confirmations(self, text):
        assert not is_confirmation_response(text)


class TestResolveIntent:
    def test_search_with_price(self):
        intent = resolve_intent("find laptops under $1500")
        assert intent == SearchIntent(query="laptops", max_price=Decimal("1500"))

    def test_search_without_keywords_clarifies(self):
        intent = resolve_intent("search for me please")
        assert isinstance(intent, ClarifyIntent)
        assert intent.tool == "search_catalog"

    def test_add_defaults_quantity(self):
        assert resolve_intent(f"add item {ITEM_ID} to my cart") == AddToCartIntent(item_id=ITEM_ID)

    def test_add_with_quantity(self):
        intent = resolve_intent(f"Add 3 x {ITEM_ID} to cart")
        assert intent == AddToCartIntent(item_id=ITEM_ID, quantity=3)

    def test_add_digits_in_id_not_used_as_quantity(self):
        intent = resolve_intent("add item 123456789012345678901234 to cart")
        assert intent == AddToCartIntent(item_id="123456789012345678901234", quantity=1)

    def test_add_without_id_clarifies(self):
        intent = resolve_intent("add the ergonomic chair to my cart")
        assert intent == ClarifyIntent(tool="add_to_cart", question=CLARIFY_ADD)

    def test_update_quantity(self):
        intent = resolve_intent(f"update quantity of {ITEM_ID} to 4")
        assert intent == UpdateCartQuantityIntent(item_id=ITEM_ID, quantity=4)

    def test_update_to_zero(self):
        intent = resolve_intent(f"set qty 0 for item: {ITEM_ID}")
        assert intent == UpdateCartQuantityIntent(item_id=ITEM_ID, quantity=0)

    def test_update_missing_quantity_clarifies(self):
        intent = resolve_intent(f"change the quantity of {ITEM_ID}")
        assert isinstance(intent, ClarifyIntent)
        assert intent.tool == "update_cart_quantity"

    def test_remove(self):
        assert resolve_intent(f"remove {ITEM_ID} from my cart") == RemoveFromCartIntent(item_id=ITEM_ID)

    def test_remove_without_id_clarifies(self):
        assert resolve_intent("delete the stapler from the cart").tool == "remove_from_cart"

    @pytest.mark.parametrize("text", ["show my cart", "view cart", "Cart", "what's in my cart?"])
    def test_view_cart(self, text):
        assert resolve_intent(text) == ViewCartIntent()

    @pytest.mark.parametrize(
        "text",
        [
            "what is the most expensive item in my cart?",
            "average unit price of my cart",
            "which cart item has the lowest price",
            "analyze my cart",
        ],
    )
    def test_analyze_cart(self, text):
        assert resolve_intent(text) == AnalyzeCartIntent()

    def test_cheapest_without_cart_is_search(self):
        assert isinstance(resolve_intent("find the cheapest staplers"), SearchIntent)

    def test_checkout_needs_confirmation(self):
        assert resolve_intent("checkout my cart") == CheckoutIntent(confirmed=False)

    def test_checkout_confirmed_with_notes(self):
        intent = resolve_intent("confirm checkout notes: for the Q3 office refresh")
        assert intent == CheckoutIntent(confirmed=True, notes="for the Q3 office refresh")

    def test_pending_checkout_confirmed_by_yes(self):
        assert resolve_intent("yes", has_pending_checkout=True) == CheckoutIntent(confirmed=True)
        assert isinstance(resolve_intent("yes"), ChatIntent)

    def test_details(self):
        assert resolve_intent(f"tell me about {ITEM_ID}") == ItemDetailsIntent(item_id=ITEM_ID)

    def test_details_without_id_clarifies(self):
        assert resolve_intent("show details for that item").tool == "get_item_details"

    def test_register(self):
        intent = resolve_intent(
            "register new item name: Desk Lamp, category: Lighting, price: $25.50, "
            "description: LED lamp with USB port"
        )
        assert intent == RegisterItemIntent(
            name="Desk Lamp",
            category="Lighting",
            description="LED lamp with USB port",
            price=Decimal("25.50"),
        )

    def test_register_anyway(self):
        intent = resolve_intent(
            "register item name: Desk Lamp, category: Lighting, price: 25, "
            "description: LED lamp with USB port; register it anyway"
        )
        assert intent.confirm_duplicate
        assert intent.description == "LED lamp with USB port"

    def test_register_missing_fields_clarifies(self):
        intent = resolve_intent("register item name: Desk Lamp")
        assert isinstance(intent, ClarifyIntent)
        assert "category" in intent.question
        assert "price" in intent.question

    @pytest.mark.parametrize("price", ["-25", "0", "0.004", "$-5.00", "twenty"])
    def test_register_non_positive_or_malformed_price_clarifies(self, price):
        intent = resolve_intent(
            f"register item name: Desk Lamp, category: Lighting, price: {price}, "
            "description: Adjustable LED desk lamp"
        )
        assert isinstance(intent, ClarifyIntent)
        assert intent.tool == "register_item"
        assert "price" in intent.question

    def test_search_with_thousands_separator(self):
        intent = resolve_intent("find office chairs under $1,500")
        assert intent == SearchIntent(query="office chairs", max_price=Decimal("1500"))

    def test_everything_else_is_chat(self):
        assert resolve_intent("what can you do?") == ChatIntent()
