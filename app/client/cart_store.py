# app/client/cart_store.py
import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

ANONYMOUS_CART_KEY = "cart"
CART_KEY_PREFIX = "cart_"


def cart_key(user_id: str | None = None) -> str:
    """`cart_<user_id>` for a signed-in user, `cart` otherwise."""
    return f"{CART_KEY_PREFIX}{user_id}" if user_id else ANONYMOUS_CART_KEY


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CartItem(BaseModel):
    """
    One cart line with denormalized product data.

    Unknown product attributes are kept as-is so nothing is lost on a
    load/save round trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id", min_length=1)
    title: str = Field(min_length=1)
    price: float
    quantity: int
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    category: str | None = None
    description: str | None = None
    discount: float | None = None
    customizations: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: Any) -> Any:
        # catalogue ids may arrive as numbers
        return str(v) if _is_number(v) else v

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class CartTotals:
    item_count: int
    subtotal: float


def _parse_items(raw: Any) -> list[CartItem]:
    """
    Keep entries that have an id, a title, a numeric price and a numeric
    quantity; drop everything else. Quantities count whole units, so a
    fractional quantity such as 1.5 is dropped as well.
    """
    if not isinstance(raw, list):
        return []

    items: list[CartItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        if "_id" not in entry and entry.get("id"):
            entry = {**entry, "_id": entry["id"]}
            entry.pop("id")
        if not (
            entry.get("_id")
            and entry.get("title")
            and _is_number(entry.get("price"))
            and _is_number(entry.get("quantity"))
        ):
            continue
        try:
            items.append(CartItem.model_validate(entry))
        except ValidationError:
            continue
    return items


class CartStore:
    """
    Per-user cart persistence over a KeyValueStore.

    Writes are last-write-wins; there is no locking between callers.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _read(self, key: str) -> list[CartItem]:
        data = self.store.get_item(key)
        if not data:
            return []
        try:
            raw = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error("Error loading cart %s: %s", key, e)
            return []
        return _parse_items(raw)

    def load(self, user_id: str | None = None) -> list[CartItem]:
        items = self._read(cart_key(user_id))
        logger.debug("Loaded cart for %s: %d items", user_id or "anonymous", len(items))
        return items

    def save(self, items: list[CartItem], user_id: str | None = None) -> None:
        self.store.set_item(cart_key(user_id), json.dumps([it.dump() for it in items]))
        logger.debug("Saved cart for %s: %d items", user_id or "anonymous", len(items))

    def clear(self, user_id: str | None = None) -> None:
        self.store.remove_item(cart_key(user_id))

    def migrate(self, user_id: str) -> list[CartItem]:
        """
        Move the anonymous cart to the user's key on first sight.

        - no anonymous cart: nothing to do, the user cart is returned
        - user cart not empty: it wins, the anonymous cart is discarded
        - otherwise the valid anonymous items become the user cart

        The anonymous key is always gone afterwards, so running it twice
        is a no-op.
        """
        if self.store.get_item(ANONYMOUS_CART_KEY) is None:
            return self.load(user_id)

        anonymous = self._read(ANONYMOUS_CART_KEY)
        current = self.load(user_id)
        self.store.remove_item(ANONYMOUS_CART_KEY)

        if current:
            if anonymous:
                logger.info(
                    "Discarded %d anonymous cart items; user %s already has a cart",
                    len(anonymous),
                    user_id,
                )
            return current

        if anonymous:
            self.save(anonymous, user_id)
            logger.info("Migrated %d cart items to user %s", len(anonymous), user_id)
        return anonymous

    def handle_login(self, user_id: str) -> list[CartItem]:
        return self.migrate(user_id)

    def handle_logout(self, user_id: str) -> None:
        self.clear(user_id)

    # ---- cart edits ----

    def add_item(self, item: CartItem, user_id: str | None = None) -> list[CartItem]:
        """
        Add a line; the same product with the same customizations
        increases the existing quantity instead.
        """
        items = self.load(user_id)
        for existing in items:
            if existing.id == item.id and existing.customizations == item.customizations:
                existing.quantity += item.quantity
                break
        else:
            items.append(item)
        self.save(items, user_id)
        return items

    def update_quantity(
        self, item_id: str, quantity: int, user_id: str | None = None
    ) -> list[CartItem]:
        if quantity <= 0:
            return self.remove_item(item_id, user_id)
        items = self.load(user_id)
        for existing in items:
            if existing.id == item_id:
                existing.quantity = quantity
        self.save(items, user_id)
        return items

    def remove_item(self, item_id: str, user_id: str | None = None) -> list[CartItem]:
        items = [it for it in self.load(user_id) if it.id != item_id]
        self.save(items, user_id)
        return items

    @staticmethod
    def totals(items: list[CartItem]) -> CartTotals:
        return CartTotals(
            item_count=sum(it.quantity for it in items),
            subtotal=round(sum(it.price * it.quantity for it in items), 2),
        )

    # ---- maintenance ----

    def cart_keys(self) -> list[str]:
        return [k for k in self.store.keys() if k.startswith(CART_KEY_PREFIX)]

    def cleanup_orphaned(self, current_user_id: str | None) -> list[str]:
        """
        Remove carts of users other than the current one. The anonymous
        cart is kept.
        """
        keep = cart_key(current_user_id) if current_user_id else None
        removed = [k for k in self.cart_keys() if k != keep]
        for key in removed:
            self.store.remove_item(key)
            logger.info("Cleaned up orphaned cart %s", key)
        return removed
