from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
import enum

from ..database import Base
from ..auth.models import new_uuid, User
from ..inventory.models import Product

class OrderStatus(str, enum.Enum):
    PENDING = "pendiente"
    IN_PROGRESS = "en proceso"
    SHIPPED = "enviado"
    DELIVERED = "entregado"
    CANCELLED = "cancelado"

class InvoiceStatus(str, enum.Enum):
    PENDING = "pendiente"
    PAID = "pagada"
    OVERDUE = "vencida"
    CANCELLED = "cancelada"

class Order(Base):
    """
    Pedido de un cliente.

    `total_amount` es el total que envía quien crea la orden; no se recalcula
    a partir de los items.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_uuid)
    customer_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, default=OrderStatus.PENDING.value, index=True, nullable=False)
    shipping_address = Column(Text, nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False)

    # Domiciliario asignado (nombre guardado como snapshot)
    delivery_person_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    delivery_person_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")
    customer = relationship(User, foreign_keys=[customer_id], lazy="selectin")

class OrderItem(Base):
    """Detalle de productos dentro de una orden."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(String(20), ForeignKey("warehouses.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)     # Precio al momento de la venta

    order = relationship("Order", back_populates="items")
    product = relationship(Product, lazy="selectin")

    @property
    def subtotal(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.price)

    @property
    def product_name(self):
        return self.product.name if self.product else None

class Invoice(Base):
    """
    Factura de una orden.

    `total_amount` incluye impuestos; el subtotal se deriva.
    """
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    invoice_number = Column(String, unique=True, index=True, nullable=False)   # FAC-000001

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), default=0)

    status = Column(String, default=InvoiceStatus.PENDING.value, index=True, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    order = relationship("Order", lazy="selectin")
    customer = relationship(User, lazy="selectin")

    @property
    def subtotal(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.tax_amount or 0)

class Delivery(Base):
    """Asignación de una orden a un domiciliario."""
    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True, default=new_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, nullable=False)
    delivery_person_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, default=OrderStatus.PENDING.value, nullable=False)

    assigned_at = Column(DateTime, default=datetime.utcnow)
    estimated_delivery = Column(DateTime, nullable=True)
    actual_delivery = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    order = relationship("Order", lazy="selectin")
    delivery_person = relationship(User, lazy="selectin")
