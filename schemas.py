"""
Database Schemas for the Nikkei store

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase of the class name.
Reference fields hold the referenced document id as a string.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import date, datetime, timezone

UserStatus = Literal["Active", "Inactive", "PendingValidation"]
OrderStatus = Literal["New", "Preparing", "ReadyForPickup", "OutForDelivery", "Delivered", "Cancelled"]
DeliveryMethod = Literal["Shipping", "Pickup"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Address(BaseModel):
    id: str
    street: str
    district: str
    region: str
    instructions: Optional[str] = None

class Profile(BaseModel):
    name: str
    description: Optional[str] = None

class Client(BaseModel):
    full_name: str
    national_id: str
    birth_date: Optional[date] = None
    sex: Optional[str] = None
    phone: str
    addresses: List[Address] = []

class User(BaseModel):
    email: EmailStr
    password: str
    status: UserStatus = "PendingValidation"
    client_id: str
    profile_id: str

class Category(BaseModel):
    name: str
    description: Optional[str] = None

class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image_url: Optional[str] = None
    available: bool = True
    category_id: str

class CartItem(BaseModel):
    id: str
    product_id: str
    quantity: int = Field(1, ge=1)

class Cart(BaseModel):
    client_id: str
    items: List[CartItem] = []
    last_accessed: datetime = Field(default_factory=_now)

class OrderItem(BaseModel):
    id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., ge=0)  # snapshot
    product_name: str  # snapshot

class Order(BaseModel):
    client_id: str
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    status: OrderStatus = "New"
    delivery_method: DeliveryMethod
    shipping_address: Optional[Address] = None
    created_at: datetime = Field(default_factory=_now)
