from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from datetime import datetime
from typing import Optional, List, Dict, Generic, TypeVar

T = TypeVar("T")

# --- UTILIDADES ---

class MetaData(BaseModel):
    """Metadatos de paginación."""
    total: int
    page: int
    limit: int
    total_pages: int

class PaginatedResponse(BaseModel, Generic[T]):
    """Respuesta genérica paginada."""
    data: List[T]
    meta: MetaData

# --- ALMACENES ---

class WarehouseBase(BaseModel):
    name: str
    type: str = Field("secondary", description="main o secondary")
    address: Optional[str] = None
    capacity: int = Field(0, ge=0)
    status: str = "active"

class WarehouseCreate(WarehouseBase):
    id: str = Field(..., min_length=1, max_length=20, description="Identificador corto (ej. '4', 'norte')")

class WarehouseResponse(WarehouseCreate):
    model_config = ConfigDict(from_attributes=True)

# --- PRODUCTOS ---

class ProductBase(BaseModel):
    """Datos base del producto."""
    sku: str = Field(..., description="Código único del producto (SKU)")
    name: str = Field(..., description="Nombre del producto")
    description: Optional[str] = None
    category: str = Field("General", description="Categoría (ej. Whisky, Ron, Cerveza)")
    brand: Optional[str] = None
    price: Decimal = Field(..., gt=0, description="Precio unitario (debe ser mayor a 0)")
    cost: Decimal = Field(0, ge=0, description="Costo unitario")
    unit: str = Field("botella", description="Unidad de venta")
    box_qty: int = Field(1, ge=1, description="Unidades por caja")
    min_stock: int = Field(0, ge=0, description="Stock mínimo por almacén")
    image_url: Optional[str] = None

class ProductCreate(ProductBase):
    stock: Dict[str, int] = Field(default_factory=dict, description="Stock inicial por almacén")

class ProductUpdate(BaseModel):
    """Campos opcionales para edición. El stock se mueve con los endpoints de inventario."""
    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    unit: Optional[str] = None
    box_qty: Optional[int] = Field(None, ge=1)
    min_stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    status: Optional[str] = None

class ProductResponse(ProductBase):
    """Respuesta completa del producto."""
    id: str
    status: str
    stock: Dict[str, int]
    stock_versions: Dict[str, int]
    total_stock: int
    is_low_stock: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CategorySummary(BaseModel):
    name: str
    count: int

# --- MOVIMIENTOS ---

class StockAdd(BaseModel):
    product_id: str
    warehouse_id: str
    quantity: int = Field(..., description="Delta a sumar (negativo para retirar)")
    notes: Optional[str] = None

class StockSet(BaseModel):
    product_id: str
    warehouse_id: str
    quantity: int = Field(..., ge=0, description="Nueva cantidad absoluta")
    expected_version: Optional[int] = Field(None, description="Versión leída; si no coincide el ajuste se rechaza")
    notes: Optional[str] = None

class TransferRequest(BaseModel):
    product_id: str
    source_warehouse_id: str
    destination_warehouse_id: str
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = None

class MovementResponse(BaseModel):
    id: str
    product_id: str
    product_name: Optional[str] = None
    warehouse_id: str
    destination_warehouse_id: Optional[str] = None
    quantity: int
    movement_type: str
    date: datetime
    notes: Optional[str] = None
    performed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
