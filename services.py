"""
Mutation flows that span more than a plain repository call: user
registration, address lists, cart line items and order lifecycle.
"""
from typing import Any, Dict, List, Optional

import structlog

from database import new_id, now
from errors import BadInput, NotFound
from references import resolve_cart, resolve_order, resolve_product, resolve_user
from repository import (
    CartRepository,
    ClientRepository,
    OrderRepository,
    ProductRepository,
    ProfileRepository,
    UserRepository,
)

logger = structlog.get_logger(__name__)


def _with_id(sub: Dict[str, Any], sub_id: Optional[str] = None) -> Dict[str, Any]:
    return {**sub, "id": sub_id or new_id()}


# Users

async def create_user(db, email: str, password: str, profile_id: str, client: Dict[str, Any]) -> dict:
    """Create the client and then the user that references it.

    If the user cannot be stored the client created for it is removed again.
    """
    users = UserRepository(db)
    clients = ClientRepository(db)
    if not await ProfileRepository(db).get(profile_id):
        raise BadInput("Selected profile does not exist")

    # fail on user fields before anything is written
    candidate = users.validate({"email": email, "password": password, "client_id": "", "profile_id": profile_id})
    await users.check_unique(candidate)

    client_fields = dict(client)
    client_fields["addresses"] = [_with_id(a) for a in client_fields.get("addresses") or []]
    created_client = await clients.create(client_fields)
    try:
        user = await users.create({
            "email": email,
            "password": password,
            "client_id": created_client["id"],
            "profile_id": profile_id,
        })
    except Exception:
        await clients.delete_by_id(created_client["id"])
        logger.warning("user.create_compensated", client_id=created_client["id"])
        raise
    return await resolve_user(db, user)


async def change_user_status(db, user_id: str, status: str) -> dict:
    user = await UserRepository(db).update_by_id(user_id, {"status": status})
    logger.info("user.status_changed", user_id=user_id, status=status)
    return await resolve_user(db, user)


# Client addresses

async def add_address(db, client_id: str, address: Dict[str, Any]) -> dict:
    clients = ClientRepository(db)
    client = await clients.find_by_id(client_id)
    addresses = client.get("addresses", []) + [_with_id(address)]
    return await clients.update_by_id(client_id, {"addresses": addresses})


async def edit_address(db, client_id: str, address_id: str, address: Dict[str, Any]) -> dict:
    clients = ClientRepository(db)
    client = await clients.get(client_id)
    addresses = list(client.get("addresses", [])) if client else []
    for i, existing in enumerate(addresses):
        if existing.get("id") == address_id:
            addresses[i] = _with_id(address, address_id)
            return await clients.update_by_id(client_id, {"addresses": addresses})
    raise NotFound("Address not found for this client")


# Products

async def change_product_availability(db, product_id: str, available: bool) -> dict:
    product = await ProductRepository(db).update_by_id(product_id, {"available": available})
    return await resolve_product(db, product)


# Cart

async def open_cart(db, client_id: str) -> dict:
    cart = await CartRepository(db).create({"client_id": client_id})
    return await resolve_cart(db, cart)


async def add_item(db, client_id: str, product_id: str, quantity: int = 1) -> dict:
    carts = CartRepository(db)
    cart = await carts.find_by_client(client_id)
    # same product twice stays as two separate lines
    items = cart.get("items", []) + [{"id": new_id(), "product_id": product_id, "quantity": quantity}]
    cart = await carts.update_by_id(cart["id"], {"items": items, "last_accessed": now()})
    logger.info("cart.item_added", client_id=client_id, product_id=product_id, quantity=quantity)
    return await resolve_cart(db, cart)


async def update_item_quantity(db, client_id: str, item_id: str, quantity: int) -> dict:
    carts = CartRepository(db)
    cart = await carts.find_by_client(client_id)
    items = [dict(item) for item in cart.get("items", [])]
    for item in items:
        if item["id"] == item_id:
            item["quantity"] = quantity
            break
    else:
        raise NotFound("Cart item not found")
    cart = await carts.update_by_id(cart["id"], {"items": items, "last_accessed": now()})
    logger.info("cart.item_updated", client_id=client_id, item_id=item_id, quantity=quantity)
    return await resolve_cart(db, cart)


async def remove_item(db, client_id: str, item_id: str) -> dict:
    carts = CartRepository(db)
    cart = await carts.find_by_client(client_id)
    items = [item for item in cart.get("items", []) if item["id"] != item_id]
    if len(items) == len(cart.get("items", [])):
        return await resolve_cart(db, cart)
    cart = await carts.update_by_id(cart["id"], {"items": items, "last_accessed": now()})
    logger.info("cart.item_removed", client_id=client_id, item_id=item_id)
    return await resolve_cart(db, cart)


# Orders

async def create_order(db, client_id: str, items: List[Dict[str, Any]], total: float,
                       delivery_method: str, shipping_address: Optional[Dict[str, Any]] = None) -> dict:
    """Store an order from the caller's line items.

    Product name and price are taken as given and kept as a snapshot.
    """
    order = await OrderRepository(db).create({
        "client_id": client_id,
        "items": [_with_id(item) for item in items],
        "total": total,
        "status": "New",
        "delivery_method": delivery_method,
        "shipping_address": _with_id(shipping_address) if shipping_address else None,
        "created_at": now(),
    })
    logger.info("order.created", order_id=order["id"], client_id=client_id, total=total)
    return await resolve_order(db, order)


async def list_orders(db, client_id: str) -> List[dict]:
    orders = await OrderRepository(db).find_all({"client_id": client_id}, sort=[("created_at", -1)])
    return [await resolve_order(db, o) for o in orders]


async def transition_status(db, order_id: str, status: str) -> dict:
    # any status may follow any other
    order = await OrderRepository(db).update_by_id(order_id, {"status": status})
    logger.info("order.status_changed", order_id=order_id, status=status)
    return await resolve_order(db, order)


async def request_cancellation(db, order_id: str, reason: Optional[str] = None) -> dict:
    order = await OrderRepository(db).update_by_id(order_id, {"status": "Cancelled"})
    logger.info("order.cancellation_requested", order_id=order_id, reason=reason)
    return await resolve_order(db, order)
