from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..database import Base
from ..auth.models import new_uuid

class WarehouseType(str, enum.Enum):
    MAIN = "main"
    SECONDARY = "secondary"

class ProductStatus(str, enum.Enum):
    ACTIVE = "activo"
    INACTIVE = "inactivo"

class MovementType(str, enum.Enum):
    ADD = "add"             # Entrada (delta)
    UPDATE = "update"       # Ajuste a valor absoluto
    TRANSFER = "transfer"   # Traslado entre almacenes

# Almacenes con los que arranca una instalación nueva
DEFAULT_WAREHOUSES = [
    {"id": "main", "name": "Principal", "type": WarehouseType.MAIN.value, "address": "Sede Central", "capacity": 1000},
    {"id": "1", "name": "Almacén 1", "type": WarehouseType.SECONDARY.value, "address": "Sede Norte", "capacity": 500},
    {"id": "2", "name": "Almacén 2", "type": WarehouseType.SECONDARY.value, "address": "Sede Sur", "capacity": 500},
    {"id": "3", "name": "Almacén 3", "type": WarehouseType.SECONDARY.value, "address": "Sede Este", "capacity": 300},
]

class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(String(20), primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, default=WarehouseType.SECONDARY.value, nullable=False)
    address = Column(String, nullable=True)
    capacity = Column(Integer, default=0)
    status = Column(String, default="active")

class Product(Base):
    """
    Producto del catálogo (licores, cervezas, vinos...).

    Attributes:
        sku: Código único de referencia.
        price: Precio de venta por unidad.
        cost: Costo de compra por unidad.
        box_qty: Unidades por caja.
        min_stock: Umbral mínimo por almacén para alertas.
        stock_levels: Existencias por almacén (una fila por almacén).
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_uuid)
    sku = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, index=True, default="General")
    brand = Column(String, nullable=True)

    price = Column(Numeric(12, 2), nullable=False)
    cost = Column(Numeric(12, 2), default=0)
    unit = Column(String, default="botella")
    box_qty = Column(Integer, default=1)
    min_stock = Column(Integer, default=0)
    image_url = Column(String, nullable=True)
    status = Column(String, default=ProductStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stock_levels = relationship(
        "ProductStock",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def stock(self):
        """Existencias como mapa almacén -> cantidad."""
        return {level.warehouse_id: level.quantity for level in self.stock_levels}

    @property
    def stock_versions(self):
        """Versión de cada fila de existencias, para ajustes con precondición."""
        return {level.warehouse_id: level.version for level in self.stock_levels}

    @property
    def total_stock(self) -> int:
        return sum(level.quantity for level in self.stock_levels)

    @property
    def is_low_stock(self) -> bool:
        """True si algún almacén quedó por debajo del mínimo."""
        threshold = self.min_stock or 0
        return any(level.quantity < threshold for level in self.stock_levels)

class ProductStock(Base):
    """
    Existencia de un producto en un almacén.

    `version` aumenta en cada escritura y sirve de precondición para ajustes
    concurrentes (compare-and-swap).
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_stock_non_negative"),
    )

    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    warehouse_id = Column(String(20), ForeignKey("warehouses.id"), primary_key=True)
    quantity = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=0, nullable=False)

    product = relationship("Product", back_populates="stock_levels")

class InventoryMovement(Base):
    """Bitácora de movimientos de inventario."""
    __tablename__ = "inventory_movements"

    id = Column(String(36), primary_key=True, default=new_uuid)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    warehouse_id = Column(String(20), ForeignKey("warehouses.id"), nullable=False)       # Origen
    destination_warehouse_id = Column(String(20), ForeignKey("warehouses.id"), nullable=True)  # Solo traslados
    quantity = Column(Integer, nullable=False)
    movement_type = Column(String, nullable=False)
    date = Column(DateTime, default=datetime.utcnow, index=True)
    notes = Column(String, nullable=True)
    performed_by = Column(String(36), nullable=True)

    product = relationship("Product", lazy="selectin")

    @property
    def product_name(self):
        return self.product.name if self.product else None
