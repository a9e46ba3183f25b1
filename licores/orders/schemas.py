from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from datetime import date, datetime
from typing import Optional, List

from ..auth.schemas import UserResponse
from .models import OrderStatus

# --- ORDENES ---

class OrderItemCreate(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0, description="Precio unitario al momento de la venta")
    warehouse_id: Optional[str] = None

class OrderItemResponse(OrderItemCreate):
    id: str
    order_id: str
    product_name: Optional[str] = None
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)

class OrderCreate(BaseModel):
    customer_id: Optional[str] = Field(None, description="Si lo crea un cliente se usa su propio ID")
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_address: Optional[str] = None
    total_amount: Decimal = Field(..., ge=0, description="Total calculado por quien crea la orden")

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    delivery_person_id: Optional[str] = None
    delivery_person_name: Optional[str] = None

class OrderResponse(BaseModel):
    id: str
    customer_id: str
    status: str
    shipping_address: Optional[str] = None
    total_amount: Decimal
    delivery_person_id: Optional[str] = None
    delivery_person_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    items: List[OrderItemResponse] = []
    customer: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True)

# --- FACTURAS ---

class InvoiceCreate(BaseModel):
    order_id: str
    due_days: Optional[int] = Field(None, ge=0, description="Días de crédito; por defecto INVOICE_DUE_DAYS")

class InvoiceResponse(BaseModel):
    id: str
    order_id: str
    customer_id: str
    invoice_number: str
    issue_date: date
    due_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: str
    paid_at: Optional[datetime] = None
    created_at: datetime

    customer: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True)

class OverdueResult(BaseModel):
    updated: int

# --- DOMICILIOS ---

class DeliveryResponse(BaseModel):
    id: str
    order_id: str
    delivery_person_id: str
    status: str
    assigned_at: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    delivery_person: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True)
