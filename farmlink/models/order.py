from pydantic import BaseModel, Field
from typing import List, Optional


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class DeliveryAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    delivery_address: DeliveryAddress


class OrderStatusUpdate(BaseModel):
    status: str
