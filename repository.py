"""
Repositories: one per collection, thin wrappers over the MongoDB handle.

Every write is validated against the collection schema, the unique fields and
the reference fields before anything is persisted.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from pymongo.errors import DuplicateKeyError

from database import create_document, encode, get_documents, parse_id, to_dict
from errors import BadInput, NotFound, ValidationError
from references import present_client
import schemas

logger = structlog.get_logger(__name__)


def describe(exc: SchemaError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


class Repository:
    collection: str = ""
    label: str = "Document"
    schema: Type[BaseModel]
    unique_fields: Tuple[str, ...] = ()
    # field -> referenced collection
    references: Dict[str, str] = {}

    def __init__(self, db):
        self.db = db
        self.coll = db[self.collection]

    def validate(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.schema(**fields).model_dump()
        except SchemaError as e:
            raise ValidationError(f"{self.label} validation failed: {describe(e)}")

    def present(self, doc: dict) -> dict:
        return doc

    async def get(self, doc_id) -> Optional[dict]:
        oid = parse_id(doc_id)
        if oid is None:
            return None
        return await self.coll.find_one({"_id": oid})

    async def find_by_id(self, doc_id) -> dict:
        doc = await self.get(doc_id)
        if not doc:
            raise NotFound(f"{self.label} not found")
        return self.present(to_dict(doc))

    async def find_all(self, filter_dict: Optional[Dict[str, Any]] = None, sort: Optional[list] = None) -> List[dict]:
        docs = await get_documents(self.db, self.collection, filter_dict, sort=sort)
        return [self.present(d) for d in docs]

    async def find_one(self, filter_dict: Dict[str, Any]) -> Optional[dict]:
        return await self.coll.find_one(filter_dict)

    async def check_unique(self, doc: Dict[str, Any], exclude=None) -> None:
        for field in self.unique_fields:
            query: Dict[str, Any] = {field: doc.get(field)}
            if exclude is not None:
                query["_id"] = {"$ne": exclude}
            if await self.coll.find_one(query):
                raise ValidationError(f"{self.label} with {field} '{doc.get(field)}' already exists")

    async def require(self, collection: str, ref_id, field: str) -> dict:
        oid = parse_id(ref_id)
        found = await self.db[collection].find_one({"_id": oid}) if oid is not None else None
        if not found:
            raise BadInput(f"{collection.capitalize()} referenced by {field} does not exist")
        return found

    async def check_references(self, doc: Dict[str, Any], changed: Optional[Iterable[str]] = None,
                               current: Optional[dict] = None) -> None:
        for field, target in self.references.items():
            if changed is not None and field not in changed:
                continue
            await self.require(target, doc.get(field), field)

    async def create(self, fields: Dict[str, Any]) -> dict:
        doc = self.validate(fields)
        await self.check_unique(doc)
        await self.check_references(doc)
        try:
            doc_id = await create_document(self.db, self.collection, doc)
        except DuplicateKeyError as e:
            raise ValidationError(f"{self.label} violates a unique constraint: {e}")
        logger.info("entity.created", collection=self.collection, id=doc_id)
        return await self.find_by_id(doc_id)

    async def update_by_id(self, doc_id, fields: Dict[str, Any]) -> dict:
        current = await self.get(doc_id)
        if not current:
            raise NotFound(f"{self.label} not found")
        merged = {k: v for k, v in current.items() if k != "_id"}
        merged.update(fields)
        doc = self.validate(merged)
        await self.check_unique(doc, exclude=current["_id"])
        await self.check_references(doc, changed=fields.keys(), current=current)
        try:
            await self.coll.update_one({"_id": current["_id"]}, {"$set": encode(doc)})
        except DuplicateKeyError as e:
            raise ValidationError(f"{self.label} violates a unique constraint: {e}")
        logger.info("entity.updated", collection=self.collection, id=str(current["_id"]), fields=sorted(fields))
        return await self.find_by_id(current["_id"])

    async def delete_by_id(self, doc_id) -> dict:
        oid = parse_id(doc_id)
        if oid is not None:
            res = await self.coll.delete_one({"_id": oid})
            logger.info("entity.deleted", collection=self.collection, id=str(oid), deleted=res.deleted_count)
        return {"status": "200", "message": f"{self.label} deleted"}


class ProfileRepository(Repository):
    collection = "profile"
    label = "Profile"
    schema = schemas.Profile
    unique_fields = ("name",)


class ClientRepository(Repository):
    collection = "client"
    label = "Client"
    schema = schemas.Client
    unique_fields = ("national_id",)

    def present(self, doc: dict) -> dict:
        return present_client(doc)


class UserRepository(Repository):
    collection = "user"
    label = "User"
    schema = schemas.User
    unique_fields = ("email", "client_id")
    references = {"client_id": "client", "profile_id": "profile"}

    def validate(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = super().validate(fields)
        doc["email"] = doc["email"].lower()
        return doc


class CategoryRepository(Repository):
    collection = "category"
    label = "Category"
    schema = schemas.Category
    unique_fields = ("name",)


class ProductRepository(Repository):
    collection = "product"
    label = "Product"
    schema = schemas.Product
    references = {"category_id": "category"}


class _LineItemsRepository(Repository):
    """Repository whose documents carry an ``items`` list referencing products."""

    async def check_references(self, doc: Dict[str, Any], changed: Optional[Iterable[str]] = None,
                               current: Optional[dict] = None) -> None:
        changed = None if changed is None else set(changed)
        await super().check_references(doc, changed, current)
        if changed is not None and "items" not in changed:
            return
        # lines already stored were checked when they were written
        known = {item["id"] for item in (current or {}).get("items", [])}
        for item in doc.get("items", []):
            if item["id"] not in known:
                await self.require("product", item["product_id"], "product_id")


class CartRepository(_LineItemsRepository):
    collection = "cart"
    label = "Cart"
    schema = schemas.Cart
    unique_fields = ("client_id",)
    references = {"client_id": "client"}

    async def find_by_client(self, client_id: str) -> dict:
        cart = await self.find_one({"client_id": client_id})
        if not cart:
            raise NotFound("Cart not found for this client")
        return to_dict(cart)


class OrderRepository(_LineItemsRepository):
    collection = "order"
    label = "Order"
    schema = schemas.Order
    references = {"client_id": "client"}
