import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, or_, update
from typing import Optional, Dict, Any

from ..exceptions import ErrorKind, ServiceError
from . import models, schemas

logger = logging.getLogger(__name__)

# --- ALMACENES ---

async def get_warehouses(db: AsyncSession):
    query = select(models.Warehouse).order_by(models.Warehouse.type.asc(), models.Warehouse.id.asc())
    result = await db.execute(query)
    return result.scalars().all()

async def get_warehouse(db: AsyncSession, warehouse_id: str):
    query = select(models.Warehouse).filter(models.Warehouse.id == warehouse_id)
    result = await db.execute(query)
    return result.scalars().first()

async def create_warehouse(db: AsyncSession, warehouse: schemas.WarehouseCreate):
    """
    Registra un almacén nuevo y le crea una fila de existencias en cero
    para cada producto del catálogo.
    """
    if await get_warehouse(db, warehouse.id):
        raise ServiceError(ErrorKind.DUPLICATE_WAREHOUSE, f"Ya existe el almacén '{warehouse.id}'")

    db_warehouse = models.Warehouse(**warehouse.model_dump())
    db.add(db_warehouse)
    await db.flush()

    product_ids = (await db.execute(select(models.Product.id))).scalars().all()
    for product_id in product_ids:
        db.add(models.ProductStock(product_id=product_id, warehouse_id=warehouse.id, quantity=0, version=0))

    await db.commit()
    await db.refresh(db_warehouse)
    logger.info(f"🏬 Almacén creado: {warehouse.id} ({len(product_ids)} productos)")
    return db_warehouse

async def seed_warehouses(db: AsyncSession):
    """Inserta los almacenes por defecto que falten. Devuelve cuántos se crearon."""
    existing = set((await db.execute(select(models.Warehouse.id))).scalars().all())
    created = 0
    for data in models.DEFAULT_WAREHOUSES:
        if data["id"] not in existing:
            db.add(models.Warehouse(**data))
            created += 1
    if created:
        await db.commit()
    return created

# --- PRODUCTOS ---

async def get_product_by_sku(db: AsyncSession, sku: str):
    """Busca un producto por SKU para validaciones."""
    query = select(models.Product).filter(models.Product.sku == sku)
    result = await db.execute(query)
    return result.scalars().first()

async def get_product_by_id(db: AsyncSession, product_id: str):
    """Busca un producto por ID, recargando sus existencias desde la BD."""
    query = (
        select(models.Product)
        .filter(models.Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalars().first()

async def get_products(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    category: Optional[str] = None,
    include_inactive: bool = False
) -> Dict[str, Any]:
    """
    Lista productos con paginación.
    Permite buscar por Nombre O por SKU.
    """
    offset = (page - 1) * limit

    conditions = []
    if not include_inactive:
        conditions.append(models.Product.status == models.ProductStatus.ACTIVE.value)

    if search:
        term = f"%{search}%"
        conditions.append(
            or_(
                models.Product.name.ilike(term),
                models.Product.sku.ilike(term)
            )
        )

    if category and category != 'Todas':
        conditions.append(models.Product.category == category)

    # 1. Conteo optimizado
    count_query = select(func.count(models.Product.id)).filter(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    # 2. Obtener Datos
    query = (
        select(models.Product)
        .filter(*conditions)
        .order_by(models.Product.name.asc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    data = result.scalars().all()

    total_pages = (total + limit - 1) // limit if limit > 0 else 0

    return {
        "data": data,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages
        }
    }

async def create_product(db: AsyncSession, product: schemas.ProductCreate):
    """
    Crea el producto con una fila de existencias por almacén.
    Las cantidades iniciales salen de `product.stock`; el resto arranca en cero.
    """
    if await get_product_by_sku(db, product.sku):
        raise ServiceError(ErrorKind.DUPLICATE_SKU, f"Ya existe un producto con el SKU '{product.sku}'")

    warehouses = await get_warehouses(db)
    known = {w.id for w in warehouses}
    unknown = set(product.stock) - known
    if unknown:
        raise ServiceError(ErrorKind.WAREHOUSE_NOT_FOUND, f"Almacenes desconocidos: {sorted(unknown)}")
    if any(qty < 0 for qty in product.stock.values()):
        raise ServiceError(ErrorKind.INVALID_QUANTITY, "El stock inicial no puede ser negativo")

    db_product = models.Product(**product.model_dump(exclude={"stock"}))
    db_product.stock_levels = [
        models.ProductStock(warehouse_id=w.id, quantity=product.stock.get(w.id, 0), version=0)
        for w in warehouses
    ]
    db.add(db_product)
    await db.commit()
    logger.info(f"🍾 Producto creado: {db_product.sku} ({db_product.id})")

    return await get_product_by_id(db, db_product.id)

async def update_product(db: AsyncSession, product_id: str, updates: schemas.ProductUpdate):
    db_product = await get_product_by_id(db, product_id)
    if not db_product:
        return None

    update_data = updates.model_dump(exclude_unset=True, exclude_none=True)
    if "sku" in update_data and update_data["sku"] != db_product.sku:
        if await get_product_by_sku(db, update_data["sku"]):
            raise ServiceError(ErrorKind.DUPLICATE_SKU, f"Ya existe un producto con el SKU '{update_data['sku']}'")

    for key, value in update_data.items():
        setattr(db_product, key, value)

    await db.commit()
    return await get_product_by_id(db, product_id)

async def delete_product(db: AsyncSession, product_id: str):
    """
    Realiza un borrado lógico (Soft Delete) del producto.
    Las órdenes y movimientos históricos siguen apuntando a él.
    """
    product = await get_product_by_id(db, product_id)

    if product:
        product.status = models.ProductStatus.INACTIVE.value
        await db.commit()
        product = await get_product_by_id(db, product_id)

    return product

async def get_categories_summary(db: AsyncSession):
    """
    Retorna las categorías únicas y el conteo de productos activos en cada una.
    """
    query = (
        select(models.Product.category, func.count(models.Product.id))
        .filter(models.Product.status == models.ProductStatus.ACTIVE.value)
        .group_by(models.Product.category)
        .order_by(models.Product.category.asc())
    )
    result = await db.execute(query)
    return [{"name": row[0], "count": row[1]} for row in result.all()]

async def get_low_stock_products(db: AsyncSession):
    """Productos activos con algún almacén por debajo de su stock mínimo."""
    query = (
        select(models.Product)
        .join(models.ProductStock, models.ProductStock.product_id == models.Product.id)
        .filter(
            models.Product.status == models.ProductStatus.ACTIVE.value,
            models.ProductStock.quantity < models.Product.min_stock
        )
        .distinct()
        .order_by(models.Product.name.asc())
    )
    result = await db.execute(query)
    return result.scalars().all()

# --- EXISTENCIAS ---

async def _require_product_and_warehouses(db: AsyncSession, product_id: str, *warehouse_ids: str):
    exists = (await db.execute(select(models.Product.id).filter(models.Product.id == product_id))).scalar()
    if not exists:
        raise ServiceError(ErrorKind.PRODUCT_NOT_FOUND)
    for warehouse_id in warehouse_ids:
        if not await get_warehouse(db, warehouse_id):
            raise ServiceError(ErrorKind.WAREHOUSE_NOT_FOUND, f"Almacén '{warehouse_id}' no existe")

async def _ensure_stock_row(db: AsyncSession, product_id: str, warehouse_id: str):
    """Crea la fila en cero si el producto aún no tiene existencias en ese almacén."""
    query = select(models.ProductStock.version).filter(
        models.ProductStock.product_id == product_id,
        models.ProductStock.warehouse_id == warehouse_id
    )
    if (await db.execute(query)).first() is None:
        db.add(models.ProductStock(product_id=product_id, warehouse_id=warehouse_id, quantity=0, version=0))
        await db.flush()

async def _increment_stock(db: AsyncSession, product_id: str, warehouse_id: str, delta: int) -> bool:
    """
    quantity = quantity + delta en una sola sentencia, solo si el resultado
    no queda negativo. Devuelve False si la condición no se cumplió.
    """
    stmt = (
        update(models.ProductStock)
        .where(
            models.ProductStock.product_id == product_id,
            models.ProductStock.warehouse_id == warehouse_id,
            models.ProductStock.quantity + delta >= 0
        )
        .values(
            quantity=models.ProductStock.quantity + delta,
            version=models.ProductStock.version + 1
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1

def _movement(product_id, warehouse_id, quantity, movement_type, destination=None, notes=None, user_id=None):
    return models.InventoryMovement(
        product_id=product_id,
        warehouse_id=warehouse_id,
        destination_warehouse_id=destination,
        quantity=quantity,
        movement_type=movement_type.value,
        notes=notes,
        performed_by=user_id
    )

async def add_inventory(
    db: AsyncSession,
    product_id: str,
    warehouse_id: str,
    quantity: int,
    notes: Optional[str] = None,
    user_id: Optional[str] = None
):
    """
    Suma `quantity` (puede ser negativa) a las existencias de un almacén y
    registra el movimiento en la misma transacción.
    """
    if quantity == 0:
        raise ServiceError(ErrorKind.INVALID_QUANTITY, "La cantidad no puede ser cero")

    await _require_product_and_warehouses(db, product_id, warehouse_id)
    try:
        await _ensure_stock_row(db, product_id, warehouse_id)
        if not await _increment_stock(db, product_id, warehouse_id, quantity):
            raise ServiceError(ErrorKind.INSUFFICIENT_STOCK)

        db.add(_movement(product_id, warehouse_id, quantity, models.MovementType.ADD, notes=notes, user_id=user_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"📦 Entrada de inventario: {product_id} @ {warehouse_id} ({quantity:+d})")
    return await get_product_by_id(db, product_id)

async def update_inventory(
    db: AsyncSession,
    product_id: str,
    warehouse_id: str,
    new_quantity: int,
    expected_version: Optional[int] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None
):
    """
    Fija la cantidad absoluta de un almacén.

    Con `expected_version` el ajuste es un compare-and-swap: si otra escritura
    llegó primero se lanza STOCK_CONFLICT y nada cambia.
    """
    if new_quantity < 0:
        raise ServiceError(ErrorKind.INVALID_QUANTITY, "La cantidad no puede ser negativa")

    await _require_product_and_warehouses(db, product_id, warehouse_id)
    try:
        await _ensure_stock_row(db, product_id, warehouse_id)

        conditions = [
            models.ProductStock.product_id == product_id,
            models.ProductStock.warehouse_id == warehouse_id,
        ]
        if expected_version is not None:
            conditions.append(models.ProductStock.version == expected_version)

        stmt = (
            update(models.ProductStock)
            .where(*conditions)
            .values(quantity=new_quantity, version=models.ProductStock.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            raise ServiceError(ErrorKind.STOCK_CONFLICT)

        db.add(_movement(product_id, warehouse_id, new_quantity, models.MovementType.UPDATE, notes=notes, user_id=user_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"📝 Ajuste de inventario: {product_id} @ {warehouse_id} = {new_quantity}")
    return await get_product_by_id(db, product_id)

async def transfer_inventory(
    db: AsyncSession,
    product_id: str,
    source_warehouse_id: str,
    destination_warehouse_id: str,
    quantity: int,
    notes: Optional[str] = None,
    user_id: Optional[str] = None
):
    """
    Traslada existencias entre almacenes.

    El descuento en origen es condicional (`quantity >= :qty`), de modo que dos
    traslados simultáneos no pueden retirar el mismo stock. Origen, destino y
    movimiento se confirman juntos o no se confirma nada.
    """
    if quantity <= 0:
        raise ServiceError(ErrorKind.INVALID_QUANTITY, "La cantidad debe ser mayor a cero")
    if source_warehouse_id == destination_warehouse_id:
        raise ServiceError(ErrorKind.INVALID_TRANSFER, "Origen y destino deben ser distintos")

    await _require_product_and_warehouses(db, product_id, source_warehouse_id, destination_warehouse_id)
    try:
        await _ensure_stock_row(db, product_id, source_warehouse_id)
        await _ensure_stock_row(db, product_id, destination_warehouse_id)

        if not await _increment_stock(db, product_id, source_warehouse_id, -quantity):
            raise ServiceError(ErrorKind.INSUFFICIENT_STOCK, "Inventario insuficiente en el almacén de origen")
        if not await _increment_stock(db, product_id, destination_warehouse_id, quantity):
            raise ServiceError(ErrorKind.UNKNOWN, "No se pudo acreditar el almacén de destino")

        db.add(_movement(
            product_id, source_warehouse_id, quantity, models.MovementType.TRANSFER,
            destination=destination_warehouse_id, notes=notes, user_id=user_id
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"🚚 Traslado: {product_id} {source_warehouse_id} -> {destination_warehouse_id} ({quantity})")
    return await get_product_by_id(db, product_id)

async def get_inventory_movements(db: AsyncSession, product_id: Optional[str] = None, limit: int = 200):
    query = select(models.InventoryMovement)
    if product_id:
        query = query.filter(models.InventoryMovement.product_id == product_id)
    query = query.order_by(models.InventoryMovement.date.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()
