"""
Cross-reference resolution for read responses.

Reference fields (``client_id``, ``profile_id``, ``category_id``,
``product_id``) are replaced by the referenced document. A reference whose
target has been deleted resolves to None.
"""
from datetime import datetime
from typing import Optional

from database import parse_id, to_dict


async def _lookup(db, collection: str, ref_id) -> Optional[dict]:
    oid = parse_id(ref_id)
    if oid is None:
        return None
    return to_dict(await db[collection].find_one({"_id": oid}))


def present_client(client: Optional[dict]) -> Optional[dict]:
    if not client:
        return client
    client = dict(client)
    if isinstance(client.get("birth_date"), datetime):
        client["birth_date"] = client["birth_date"].date()
    return client


async def resolve_user(db, user: dict) -> dict:
    user = {k: v for k, v in user.items() if k != "password"}
    user["client"] = present_client(await _lookup(db, "client", user.pop("client_id", None)))
    user["profile"] = await _lookup(db, "profile", user.pop("profile_id", None))
    return user


async def resolve_product(db, product: Optional[dict]) -> Optional[dict]:
    if not product:
        return product
    product = dict(product)
    product["category"] = await _lookup(db, "category", product.pop("category_id", None))
    return product


async def _resolve_items(db, items: list) -> list:
    resolved = []
    for item in items:
        item = dict(item)
        product = await _lookup(db, "product", item.pop("product_id", None))
        item["product"] = await resolve_product(db, product)
        resolved.append(item)
    return resolved


async def resolve_cart(db, cart: dict) -> dict:
    cart = dict(cart)
    cart["client"] = present_client(await _lookup(db, "client", cart.pop("client_id", None)))
    cart["items"] = await _resolve_items(db, cart.get("items", []))
    return cart


async def resolve_order(db, order: dict) -> dict:
    order = dict(order)
    order["client"] = present_client(await _lookup(db, "client", order.pop("client_id", None)))
    order["items"] = await _resolve_items(db, order.get("items", []))
    return order
