"""Heuristic intent routing for procurement chat messages.

Rules are ordered keyword/phrase checks over the lowercased message with
light regex capture for ids, quantities, and prices. When a rule fires
but a required argument cannot be extracted the router returns a
clarifying question rather than guessing. Messages no rule claims fall
through to a free-text chat completion.
"""

import re
from decimal import Decimal, InvalidOperation

from procureflow.orchestrator.models.intent import (
    AddToCartIntent,
    AnalyzeCartIntent,
    ChatIntent,
    CheckoutIntent,
    ClarifyIntent,
    Intent,
    ItemDetailsIntent,
    RegisterItemIntent,
    RemoveFromCartIntent,
    SearchIntent,
    UpdateCartQuantityIntent,
    ViewCartIntent,
)

_HEX_ID_PATTERN = re.compile(r"\b([a-f0-9]{24})\b", re.IGNORECASE)
_LABELLED_ID_PATTERN = re.compile(r"\bitem\s*:\s*([A-Za-z0-9_-]+)", re.IGNORECASE)
_QUANTITY_PATTERNS = (
    re.compile(r"\b(?:quantity|qty)\s*[:=]?\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*(?:×|x\b)", re.IGNORECASE),
)
_UPDATE_TARGET_PATTERN = re.compile(r"\bto\s+(\d+)\b", re.IGNORECASE)
_AMOUNT = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{1,2})?"
_PRICE_CEILING_PATTERN = re.compile(
    rf"\b(?:under|below|less than|no more than)\s*\$?\s*({_AMOUNT})\b",
    re.IGNORECASE,
)
_NOTES_PATTERN = re.compile(r"\b(?:notes?|justification)\s*:\s*(.+)", re.IGNORECASE)

_SEARCH_TRIGGERS = ("search", "find", "look for")
_SEARCH_STOP_PHRASES = re.compile(
    r"\b(?:search(?:ing)?|find|look(?:ing)? for|in (?:the )?catalog|for|me|please)\b",
    re.IGNORECASE,
)
_ADD_PATTERN = re.compile(r"\badd\b[^.?!]*\bto (?:my |the )?cart\b|\badd item\b")
_REMOVE_PATTERN = re.compile(r"\b(?:remove|delete)\b[^.?!]*\bfrom (?:my |the )?cart\b")
_UPDATE_PATTERN = re.compile(r"\b(?:update|change|set)\b")
_UPDATE_TARGET_WORDS = re.compile(r"\b(?:quantity|qty)\b")
_VIEW_CART_PHRASES = ("view cart", "show cart", "my cart")
_CHECKOUT_PHRASES = ("checkout", "check out", "complete purchase")
_ANALYZE_PATTERN = re.compile(
    r"\b(?:most|least) expensive\b|\bcheapest\b"
    r"|\b(?:highest|lowest|average|avg|mean)\s+(?:unit\s+)?price\b"
    r"|\banaly[sz]e\b|\bstatistics\b|\bstats\b"
)
_CHECKOUT_CONFIRM_PATTERN = re.compile(r"\b(?:confirm(?:ed)?|yes)\b")
_DETAILS_PATTERN = re.compile(r"\bdetails?\b|\btell me about\b")
_REGISTER_PATTERN = re.compile(r"\bregister\b(?:\s+(?:a|an|new|the))*\s+item\b")
_DUPLICATE_CONFIRM_PATTERN = re.compile(
    r"\bconfirm duplicate\b|\b(?:register|create|add) (?:it )?anyway\b"
)

_REGISTER_LABELS = ("name", "category", "price", "description")
_LABEL_ALTERNATION = "name|category|price|description|desc"


def _field_pattern(label: str) -> re.Pattern[str]:
    names = "description|desc" if label == "description" else label
    return re.compile(
        rf"\b(?:{names})\s*:\s*(.+?)"
        rf"(?=\s*[,;\n]?\s*\b(?:{_LABEL_ALTERNATION})\s*:|[;\n]|$)",
        re.IGNORECASE | re.DOTALL,
    )


_REGISTER_FIELD_PATTERNS = {label: _field_pattern(label) for label in _REGISTER_LABELS}
_PRICE_VALUE_PATTERN = re.compile(rf"\$?\s*({_AMOUNT})(?:\s*(?:usd|dollars?))?", re.IGNORECASE)

CONFIRMATION_WORDS = frozenset({
    "yes", "y", "ok", "okay", "confirm", "confirmed", "proceed",
    "continue", "go ahead", "yes please", "confirm checkout",
})

CLARIFY_ADD = (
    "To add an item to your cart, I need the item ID. You can find item IDs by "
    "searching the catalog first. For example, say 'search for laptops' to see "
    "available items."
)
CLARIFY_REMOVE = (
    "To remove an item from your cart, I need the item ID. You can see item IDs "
    "by viewing your cart first."
)
CLARIFY_UPDATE = (
    "To change a quantity, I need the item ID and the new quantity. For example: "
    "'update quantity of item: <id> to 3'."
)
CLARIFY_DETAILS = (
    "Which item would you like details for? Please include the item ID from your "
    "search results."
)
CLARIFY_SEARCH = (
    "What would you like me to search for? For example, 'find office chairs under $300'."
)


def is_confirmation_response(message: str | None) -> bool:
    """True for short confirmation replies (yes/proceed/confirm)."""
    if not message:
        return False
    text = " ".join(message.strip().lower().rstrip(".!").split())
    return text in CONFIRMATION_WORDS


def extract_item_id(message: str) -> str | None:
    """24-hex id anywhere in the text, else an `item: <token>` capture."""
    match = _HEX_ID_PATTERN.search(message)
    if match:
        return match.group(1).lower()
    match = _LABELLED_ID_PATTERN.search(message)
    return match.group(1) if match else None


def _without_id(message: str, item_id: str | None) -> str:
    if not item_id:
        return message
    cleaned = _LABELLED_ID_PATTERN.sub(" ", message)
    return re.sub(re.escape(item_id), " ", cleaned, flags=re.IGNORECASE)


def extract_quantity(message: str) -> int | None:
    """Quantity from "quantity: N", "qty N", or "N x" / "N ×"."""
    for pattern in _QUANTITY_PATTERNS:
        match = pattern.search(message)
        if match:
            return int(match.group(1))
    return None


def _to_decimal(amount: str) -> Decimal:
    return Decimal(amount.replace(",", ""))


def extract_max_price(message: str) -> Decimal | None:
    match = _PRICE_CEILING_PATTERN.search(message)
    if not match:
        return None
    return _to_decimal(match.group(1))


def extract_search_keywords(message: str) -> str:
    """Residual keywords after removing trigger words and price clauses."""
    text = _PRICE_CEILING_PATTERN.sub(" ", message.lower())
    text = _SEARCH_STOP_PHRASES.sub(" ", text)
    text = re.sub(r"[^\w\s$.-]", " ", text)
    return " ".join(text.split()).strip(" .-")


def extract_register_fields(message: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for label, pattern in _REGISTER_FIELD_PATTERNS.items():
        match = pattern.search(message)
        if match:
            value = match.group(1).strip().strip(",").strip()
            if value:
                fields[label] = value
    return fields


def _resolve_register(message: str, lowered: str) -> Intent:
    fields = extract_register_fields(message)
    price: Decimal | None = None
    if "price" in fields:
        # Only a plain positive amount; "-25" or "0.004" get a clarifying question
        price_match = _PRICE_VALUE_PATTERN.fullmatch(fields["price"].strip())
        if price_match:
            try:
                price = _to_decimal(price_match.group(1))
            except InvalidOperation:
                price = None
        if price is not None and price <= 0:
            price = None

    missing = [label for label in _REGISTER_LABELS if label not in fields]
    if price is None and "price" not in missing:
        missing.append("price (a positive amount such as 25.00)")
    if missing:
        return ClarifyIntent(
            tool="register_item",
            question=(
                f"To register an item I still need: {', '.join(missing)}. Use the format "
                "'register item name: ..., category: ..., price: ..., description: ...'."
            ),
        )
    return RegisterItemIntent(
        name=fields["name"],
        category=fields["category"],
        description=fields["description"],
        price=price,
        confirm_duplicate=bool(_DUPLICATE_CONFIRM_PATTERN.search(lowered)),
    )


def _resolve_checkout(message: str, lowered: str) -> CheckoutIntent:
    notes_match = _NOTES_PATTERN.search(message)
    notes = notes_match.group(1).strip() if notes_match else None
    return CheckoutIntent(
        confirmed=bool(_CHECKOUT_CONFIRM_PATTERN.search(lowered)),
        notes=notes or None,
    )


def resolve_intent(message: str, *, has_pending_checkout: bool = False) -> Intent:
    """Classify a safety-cleared message into an Intent.

    Args:
        message: The user's message.
        has_pending_checkout: A checkout confirmation prompt is outstanding
            for this conversation, so a bare "yes" confirms it.

    Returns:
        One Intent variant. Never raises for ordinary text.
    """
    text = message.strip()
    lowered = " ".join(text.lower().split())

    if has_pending_checkout and is_confirmation_response(text):
        return CheckoutIntent(confirmed=True)

    if _REGISTER_PATTERN.search(lowered):
        return _resolve_register(text, lowered)

    if _ADD_PATTERN.search(lowered):
        item_id = extract_item_id(text)
        if item_id is None:
            return ClarifyIntent(tool="add_to_cart", question=CLARIFY_ADD)
        quantity = extract_quantity(_without_id(text, item_id))
        return AddToCartIntent(item_id=item_id, quantity=quantity if quantity is not None else 1)

    if _UPDATE_PATTERN.search(lowered) and _UPDATE_TARGET_WORDS.search(lowered):
        item_id = extract_item_id(text)
        rest = _without_id(text, item_id)
        quantity = extract_quantity(rest)
        if quantity is None:
            target = _UPDATE_TARGET_PATTERN.search(rest)
            quantity = int(target.group(1)) if target else None
        if item_id is None or quantity is None:
            return ClarifyIntent(tool="update_cart_quantity", question=CLARIFY_UPDATE)
        return UpdateCartQuantityIntent(item_id=item_id, quantity=quantity)

    if _REMOVE_PATTERN.search(lowered):
        item_id = extract_item_id(text)
        if item_id is None:
            return ClarifyIntent(tool="remove_from_cart", question=CLARIFY_REMOVE)
        return RemoveFromCartIntent(item_id=item_id)

    if re.search(r"\bcart\b", lowered) and _ANALYZE_PATTERN.search(lowered):
        return AnalyzeCartIntent()

    if any(phrase in lowered for phrase in _CHECKOUT_PHRASES):
        return _resolve_checkout(text, lowered)

    if lowered == "cart" or any(phrase in lowered for phrase in _VIEW_CART_PHRASES):
        return ViewCartIntent()

    if _DETAILS_PATTERN.search(lowered):
        item_id = extract_item_id(text)
        if item_id is not None:
            return ItemDetailsIntent(item_id=item_id)
        if re.search(r"\bitem\b", lowered):
            return ClarifyIntent(tool="get_item_details", question=CLARIFY_DETAILS)

    if any(trigger in lowered for trigger in _SEARCH_TRIGGERS):
        keywords = extract_search_keywords(text)
        if not keywords:
            return ClarifyIntent(tool="search_catalog", question=CLARIFY_SEARCH)
        return SearchIntent(query=keywords, max_price=extract_max_price(text))

    return ChatIntent()
