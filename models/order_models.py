from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class CartItemAdd(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    # Anything below 1 removes the line
    quantity: int


class CheckoutRequest(BaseModel):
    shipping_address: str
    discount_code: Optional[str] = None

    @field_validator("shipping_address")
    @classmethod
    def address_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please enter a shipping address")
        return value


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItem(BaseModel):
    id: str
    order_id: str
    product_id: Optional[str] = None
    product_name: str
    product_price: float
    quantity: int


class OrderDetails(BaseModel):
    id: str
    user_id: str
    status: OrderStatus
    subtotal: float
    discount_code: Optional[str] = None
    discount_amount: float = 0
    total: float
    shipping_address: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItem] = []
