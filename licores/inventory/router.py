from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from licores_common.security import Permissions, UserPayload
from ..database import get_db
from ..auth.deps import RequirePermission
from . import crud, schemas
from .schemas import PaginatedResponse

router = APIRouter(prefix="/inventory", tags=["Inventory"])

# --- PRODUCTOS ---

@router.get("/products", response_model=PaginatedResponse[schemas.ProductResponse])
async def read_products(
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    category: Optional[str] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    """
    **Listar Productos**

    Catálogo paginado con existencias por almacén.
    El filtro `search` busca por Nombre o SKU.
    """
    return await crud.get_products(
        db, page=page, limit=limit, search=search, category=category, include_inactive=include_inactive
    )

@router.post("/products", response_model=schemas.ProductResponse, status_code=201)
async def create_product(
    product: schemas.ProductCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_CREATE))
):
    """
    **Crear Producto**

    **Errores:**
    - `400 Bad Request`: Si el SKU ya existe.
    - `404 Not Found`: Si el stock inicial menciona un almacén inexistente.
    """
    return await crud.create_product(db, product)

@router.get("/categories", response_model=List[schemas.CategorySummary])
async def get_categories(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    """Obtiene lista de categorías con conteo de items."""
    return await crud.get_categories_summary(db)

@router.get("/low-stock", response_model=List[schemas.ProductResponse])
async def read_low_stock(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    """Productos con algún almacén por debajo del stock mínimo."""
    return await crud.get_low_stock_products(db)

@router.get("/products/{product_id}", response_model=schemas.ProductResponse)
async def read_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    db_product = await crud.get_product_by_id(db, product_id)
    if db_product is None:
        raise HTTPException(status_code=404, detail="Producto no encontrado")
    return db_product

@router.put("/products/{product_id}", response_model=schemas.ProductResponse)
async def update_product(
    product_id: str,
    product_update: schemas.ProductUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_UPDATE))
):
    """Edita un producto existente."""
    updated_product = await crud.update_product(db, product_id, product_update)
    if not updated_product:
        raise HTTPException(status_code=404, detail="Producto no encontrado")
    return updated_product

@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_DELETE))
):
    """
    **Eliminar Producto**

    Marca el producto como inactivo. No se borra físicamente para mantener
    la integridad de órdenes y movimientos históricos.
    """
    product = await crud.delete_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Producto no encontrado")
    return

# --- ALMACENES ---

@router.get("/warehouses", response_model=List[schemas.WarehouseResponse])
async def read_warehouses(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    return await crud.get_warehouses(db)

@router.post("/warehouses", response_model=schemas.WarehouseResponse, status_code=201)
async def create_warehouse(
    warehouse: schemas.WarehouseCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.WAREHOUSE_MANAGE))
):
    return await crud.create_warehouse(db, warehouse)

# --- EXISTENCIAS ---

@router.post("/stock/add", response_model=schemas.ProductResponse)
async def add_inventory(
    request: schemas.StockAdd,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.STOCK_ADJUST))
):
    """Suma (o resta) unidades en un almacén."""
    return await crud.add_inventory(
        db, request.product_id, request.warehouse_id, request.quantity,
        notes=request.notes, user_id=user.user_id
    )

@router.post("/stock/set", response_model=schemas.ProductResponse)
async def update_inventory(
    request: schemas.StockSet,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.STOCK_ADJUST))
):
    """
    Fija la cantidad de un almacén.

    Enviar `expected_version` (de `stock_versions`) evita pisar un cambio ajeno:
    responde `409` si la versión ya no coincide.
    """
    return await crud.update_inventory(
        db, request.product_id, request.warehouse_id, request.quantity,
        expected_version=request.expected_version, notes=request.notes, user_id=user.user_id
    )

@router.post("/stock/transfer", response_model=schemas.ProductResponse)
async def transfer_inventory(
    request: schemas.TransferRequest,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.STOCK_TRANSFER))
):
    """
    **Traslado entre almacenes**

    **Errores:**
    - `409 Conflict`: Si el almacén de origen no tiene suficiente inventario.
    """
    return await crud.transfer_inventory(
        db, request.product_id, request.source_warehouse_id, request.destination_warehouse_id,
        request.quantity, notes=request.notes, user_id=user.user_id
    )

@router.get("/movements", response_model=List[schemas.MovementResponse])
async def read_movements(
    product_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PRODUCT_READ))
):
    """Movimientos de inventario, del más reciente al más antiguo."""
    return await crud.get_inventory_movements(db, product_id)
