"""Catalog search and item registration.

Search is a tokenized, field-weighted match over name, category, and
description, served through an injected SearchCache. Registration runs
a fuzzy duplicate check and refuses to create a likely duplicate until
the caller confirms.

Example:
    svc = CatalogService(db, cache=InMemorySearchCache())
    results = svc.search_items("office chair", max_price=Decimal("300"))
    item = svc.create_item(name="Ergonomic Chair", category="Furniture", ...)
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from difflib import SequenceMatcher
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from procureflow.db.models import Item, ItemStatus, decimal_to_cents, utc_now_iso
from procureflow.errors import DuplicateItemError, ItemNotFoundError, ValidationError
from procureflow.services.search_cache import NullSearchCache, SearchCache, build_search_key

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 100
MAX_DUPLICATE_CANDIDATES = 5
FUZZY_MATCH_THRESHOLD = 0.85

# Per-token score weights
NAME_WEIGHT = 3
CATEGORY_WEIGHT = 2
DESCRIPTION_WEIGHT = 1

FIELD_LIMITS: dict[str, tuple[int, int]] = {
    "name": (2, 200),
    "category": (2, 100),
    "description": (10, 2000),
}

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_UPDATABLE_FIELDS = frozenset({
    "name", "category", "description", "price", "unit",
    "preferred_supplier", "status",
})


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens of length >= 2, de-duplicated in order."""
    seen: list[str] = []
    for token in _TOKEN_RE.findall(text.lower()):
        if len(token) >= 2 and token not in seen:
            seen.append(token)
    return seen


def normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


def is_similar(a: str, b: str, threshold: float = FUZZY_MATCH_THRESHOLD) -> bool:
    """Approximate match on normalized text: equal, containment, or ratio."""
    left, right = normalize_text(a), normalize_text(b)
    if not left or not right:
        return False
    if left == right or left in right or right in left:
        return True
    return SequenceMatcher(None, left, right).ratio() >= threshold


def score_item(item: Item, tokens: list[str]) -> int:
    """Field-weighted relevance score of an item for the given tokens."""
    name = item.name.lower()
    category = item.category.lower()
    description = item.description.lower()
    score = 0
    for token in tokens:
        if token in name:
            score += NAME_WEIGHT
        if token in category:
            score += CATEGORY_WEIGHT
        if token in description:
            score += DESCRIPTION_WEIGHT
    return score


def item_to_dict(item: Item) -> dict[str, Any]:
    """Plain-data view of an item for tool results and cache entries."""
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "description": item.description,
        "price": float(item.price),
        "unit": item.unit,
        "preferred_supplier": item.preferred_supplier,
        "status": item.status,
    }


def _parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            "Price must be a number", field_errors={"price": "must be a number"}
        )
    if not price.is_finite() or price <= 0:
        raise ValidationError(
            "Price must be greater than 0",
            field_errors={"price": "must be greater than 0"},
        )
    # Stored as integer cents; 0.004 would round to a free item
    if decimal_to_cents(price) < 1:
        raise ValidationError(
            "Price must be at least 0.01",
            field_errors={"price": "must be at least 0.01"},
        )
    return price


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Strip and bounds-check the text fields present in `fields`."""
    cleaned = dict(fields)
    errors: dict[str, str] = {}
    for name, (low, high) in FIELD_LIMITS.items():
        if name not in fields:
            continue
        value = fields[name] if isinstance(fields[name], str) else ""
        value = value.strip()
        if not low <= len(value) <= high:
            errors[name] = f"must be between {low} and {high} characters"
        cleaned[name] = value
    if errors:
        detail = "; ".join(f"{k} {v}" for k, v in errors.items())
        raise ValidationError(f"Invalid item: {detail}", field_errors=errors)
    return cleaned


class CatalogService:
    """Catalog queries and mutations.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session, cache: SearchCache | None = None) -> None:
        """Initialize with a session and an optional search cache.

        Args:
            db: Active database session.
            cache: Search result cache. Defaults to no caching.
        """
        self.db = db
        self.cache = cache if cache is not None else NullSearchCache()

    def search_items(
        self,
        query: str | None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        max_price: Decimal | float | None = None,
        include_archived: bool = False,
        min_price: Decimal | float | None = None,
        category: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search the catalog.

        Args:
            query: Free text. Empty returns the most recently added items.
            limit: Maximum results (1-100).
            max_price: Optional inclusive price ceiling.
            include_archived: Include inactive and pending-review items.
            min_price: Optional inclusive price floor.
            category: Optional exact category, case-insensitive.

        Returns:
            Item dicts ordered by score desc, then name.
        """
        limit = max(1, min(int(limit or DEFAULT_SEARCH_LIMIT), MAX_SEARCH_LIMIT))
        category = (category or "").strip() or None
        key = build_search_key(query, limit, max_price, include_archived, category)
        if min_price is not None:
            key += f":min{Decimal(str(min_price)).normalize()}"

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Search cache hit: %s", key)
            return cached

        q = self.db.query(Item)
        if not include_archived:
            q = q.filter(Item.status == ItemStatus.active.value)
        if max_price is not None:
            q = q.filter(Item.price_cents <= decimal_to_cents(max_price))
        if min_price is not None:
            q = q.filter(Item.price_cents >= decimal_to_cents(min_price))
        if category is not None:
            q = q.filter(func.lower(Item.category) == category.lower())

        tokens = tokenize(query or "")
        if not tokens:
            items = q.order_by(Item.created_at.desc()).limit(limit).all()
            results = [item_to_dict(i) for i in items]
        else:
            clauses = []
            for token in tokens:
                pattern = f"%{token}%"
                clauses.extend([
                    Item.name.ilike(pattern),
                    Item.category.ilike(pattern),
                    Item.description.ilike(pattern),
                ])
            scored = [
                (score_item(item, tokens), item)
                for item in q.filter(or_(*clauses)).all()
            ]
            scored = [pair for pair in scored if pair[0] > 0]
            scored.sort(key=lambda pair: (-pair[0], pair[1].name.lower()))
            results = [item_to_dict(item) for _, item in scored[:limit]]

        self.cache.set(key, results)
        logger.info(
            "Catalog search: tokens=%s results=%d max_price=%s",
            tokens, len(results), max_price,
        )
        return results

    def get_item(self, item_id: str, active_only: bool = False) -> Item:
        """Fetch an item by id.

        Args:
            item_id: Item identifier.
            active_only: Treat non-active items as missing.

        Raises:
            ItemNotFoundError: If missing (or not active when active_only).
        """
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if item is None or (active_only and item.status != ItemStatus.active.value):
            raise ItemNotFoundError(item_id)
        return item

    def find_duplicates(self, name: str, category: str) -> list[Item]:
        """Items whose name AND category approximately match.

        Returns:
            Up to MAX_DUPLICATE_CANDIDATES items, oldest first.
        """
        matches = []
        for item in self.db.query(Item).order_by(Item.created_at).all():
            if is_similar(name, item.name) and is_similar(category, item.category):
                matches.append(item)
                if len(matches) >= MAX_DUPLICATE_CANDIDATES:
                    break
        return matches

    def create_item(
        self,
        name: str,
        category: str,
        description: str,
        price: Decimal | float | str,
        unit: str | None = None,
        preferred_supplier: str | None = None,
        created_by_user_id: str | None = None,
        confirm_duplicate: bool = False,
        status: ItemStatus = ItemStatus.active,
    ) -> Item:
        """Register a new catalog item.

        Args:
            name: Display name (2-200 chars).
            category: Category (2-100 chars).
            description: Description (10-2000 chars).
            price: Positive unit price.
            unit: Optional unit of measure.
            preferred_supplier: Optional supplier.
            created_by_user_id: Registering user.
            confirm_duplicate: Create even when similar items exist.
            status: Initial status.

        Returns:
            The created Item.

        Raises:
            ValidationError: On out-of-range fields or non-positive price.
            DuplicateItemError: When similar items exist and
                confirm_duplicate is False.
        """
        fields = _validate_fields(
            {"name": name, "category": category, "description": description}
        )
        unit_price = _parse_price(price)

        if not confirm_duplicate:
            duplicates = self.find_duplicates(fields["name"], fields["category"])
            if duplicates:
                logger.info(
                    "Duplicate check blocked item %r: %d candidate(s)",
                    fields["name"], len(duplicates),
                )
                raise DuplicateItemError([item_to_dict(d) for d in duplicates])

        item = Item(
            name=fields["name"],
            category=fields["category"],
            description=fields["description"],
            price_cents=decimal_to_cents(unit_price),
            unit=unit,
            preferred_supplier=preferred_supplier,
            created_by_user_id=created_by_user_id,
            status=ItemStatus(status).value,
        )
        self.db.add(item)
        self.db.flush()
        self.cache.invalidate()
        logger.info("Created catalog item %s (%s)", item.id, item.name)
        return item

    def update_item(self, item_id: str, **updates: Any) -> Item:
        """Partially update an item.

        Cart lines and purchase request lines keep their snapshots.

        Args:
            item_id: Item identifier.
            **updates: Any of name, category, description, price, unit,
                preferred_supplier, status.

        Raises:
            ItemNotFoundError: If the item does not exist.
            ValidationError: On unknown fields or invalid values.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        item = self.get_item(item_id)
        fields = _validate_fields(
            {k: v for k, v in updates.items() if k in FIELD_LIMITS}
        )
        for key, value in fields.items():
            setattr(item, key, value)
        if "price" in updates:
            item.price_cents = decimal_to_cents(_parse_price(updates["price"]))
        if "status" in updates:
            try:
                item.status = ItemStatus(updates["status"]).value
            except ValueError:
                raise ValidationError(f"Invalid status: {updates['status']}")
        for key in ("unit", "preferred_supplier"):
            if key in updates:
                setattr(item, key, updates[key])
        item.updated_at = utc_now_iso()

        self.db.flush()
        self.cache.invalidate()
        logger.info("Updated catalog item %s: %s", item_id, sorted(updates))
        return item
