"""
Database Schemas

Each Pydantic model represents a collection in MongoDB.
Model name lowercased is the collection name.
Documents are validated against these models when they are read back.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class Profile(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: str = ""
    address: Address = Field(default_factory=Address)

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class User(Profile):
    id: Optional[str] = None
    password_hash: str = Field(..., description="BCrypt hashed password")
    role: Literal["user", "admin"] = "user"
    is_email_verified: bool = False
    email_verification_token: Optional[str] = Field(None, description="sha256 of the pending verification token")
    email_verification_expire: Optional[datetime] = None
    reset_password_token: Optional[str] = Field(None, description="sha256 of the pending reset token")
    reset_password_expire: Optional[datetime] = None
    orders: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def public(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address.model_dump(),
            "role": self.role,
            "is_email_verified": self.is_email_verified,
        }


class Product(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    count_in_stock: int = Field(0, ge=0)


class CartLine(BaseModel):
    item_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price captured when the line was added")
    added_at: Optional[datetime] = None


class Cart(BaseModel):
    user_id: str
    items: List[CartLine] = Field(default_factory=list)
    total: float = 0

    def recompute_total(self) -> float:
        self.total = sum(line.quantity * line.price for line in self.items)
        return self.total

    def find_line(self, item_id: str) -> Optional[CartLine]:
        return next((line for line in self.items if line.item_id == item_id), None)


class Wishlist(BaseModel):
    user_id: str
    product_ids: List[str] = Field(default_factory=list)
