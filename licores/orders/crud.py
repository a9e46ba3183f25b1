import logging
import os
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.future import select
from sqlalchemy import func, or_, update

from ..auth import crud as auth_crud
from ..auth.models import User, UserRole
from ..inventory.models import Product, ProductStatus
from ..exceptions import ErrorKind, ServiceError
from . import models, schemas

logger = logging.getLogger(__name__)

# IVA incluido en el total de la orden (porcentaje)
TAX_RATE = Decimal(os.getenv("TAX_RATE", "19"))
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "30"))

def round_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

# --- ORDENES ---

async def get_order_by_id(db: AsyncSession, order_id: str):
    query = (
        select(models.Order)
        .filter(models.Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalars().first()

async def get_all_orders(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    status: Optional[str] = None,
    search: Optional[str] = None,
    customer_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Lista órdenes con items y cliente, de la más reciente a la más antigua.
    `search` filtra por nombre o email del cliente.
    """
    offset = (page - 1) * limit

    conditions = []
    if status:
        conditions.append(models.Order.status == status)
    if customer_id:
        conditions.append(models.Order.customer_id == customer_id)
    if search:
        term = f"%{search}%"
        conditions.append(
            models.Order.customer_id.in_(
                select(User.id).filter(or_(User.name.ilike(term), User.email.ilike(term)))
            )
        )

    count_query = select(func.count(models.Order.id)).filter(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        select(models.Order)
        .filter(*conditions)
        .order_by(models.Order.created_at.desc())
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

async def get_customer_orders(db: AsyncSession, customer_id: str, page: int = 1, limit: int = 50, status: Optional[str] = None):
    return await get_all_orders(db, page=page, limit=limit, status=status, customer_id=customer_id)

async def create_order(db: AsyncSession, customer_id: str, order: schemas.OrderCreate):
    """
    Registra la orden en estado `pendiente` y luego sus items.

    Si los items no se pueden guardar la transacción completa se revierte,
    de modo que no queda una orden sin detalle. El total guardado es el que
    envía quien crea la orden.
    """
    customer = await auth_crud.get_user_by_id(db, customer_id)
    if not customer:
        raise ServiceError(ErrorKind.USER_NOT_FOUND, f"Cliente {customer_id} no encontrado")

    # Solo se venden productos activos del catálogo
    product_ids = {item.product_id for item in order.items}
    active = await db.execute(
        select(Product.id).filter(Product.id.in_(product_ids), Product.status == ProductStatus.ACTIVE.value)
    )
    missing = product_ids - set(active.scalars().all())
    if missing:
        raise ServiceError(ErrorKind.PRODUCT_NOT_FOUND, f"Productos no disponibles: {sorted(missing)}")

    db_order = models.Order(
        customer_id=customer_id,
        status=models.OrderStatus.PENDING.value,
        shipping_address=order.shipping_address or customer.address,
        total_amount=order.total_amount
    )
    db.add(db_order)

    try:
        # 1. Cabecera
        await db.flush()
        order_id = db_order.id

        # 2. Detalle
        db.add_all([models.OrderItem(order_id=order_id, **item.model_dump()) for item in order.items])
        await db.flush()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"❌ Error guardando items de la orden para {customer_id}: {e}")
        raise ServiceError(ErrorKind.ORDER_ITEMS_FAILED)

    await db.commit()
    logger.info(f"🛒 Orden creada: {order_id} ({len(order.items)} items, total {order.total_amount})")
    return await get_order_by_id(db, order_id)

async def get_delivery_by_order(db: AsyncSession, order_id: str):
    query = select(models.Delivery).filter(models.Delivery.order_id == order_id)
    result = await db.execute(query)
    return result.scalars().first()

async def update_order_status(
    db: AsyncSession,
    order_id: str,
    status: models.OrderStatus,
    delivery_person_id: Optional[str] = None,
    delivery_person_name: Optional[str] = None
):
    """
    Cambia el estado de la orden (cualquier transición es válida).

    Si llega un domiciliario se guarda en la orden y se crea o reasigna su
    domicilio. El domicilio sigue el estado de la orden; al pasar a
    `entregado` se marca la hora de entrega.
    """
    db_order = await get_order_by_id(db, order_id)
    if not db_order:
        return None

    status = models.OrderStatus(status)
    now = datetime.utcnow()
    delivery = await get_delivery_by_order(db, order_id)

    if delivery_person_id:
        person = await auth_crud.get_user_by_id(db, delivery_person_id)
        if not person:
            raise ServiceError(ErrorKind.USER_NOT_FOUND, f"Domiciliario {delivery_person_id} no encontrado")
        if person.role != UserRole.DOMICILIARIO.value:
            raise ServiceError(ErrorKind.INVALID_DELIVERY_PERSON, f"{delivery_person_id} tiene rol {person.role}")

        db_order.delivery_person_id = delivery_person_id
        db_order.delivery_person_name = delivery_person_name or person.name

        if delivery is None:
            delivery = models.Delivery(order_id=order_id, delivery_person_id=delivery_person_id, assigned_at=now)
            db.add(delivery)
        elif delivery.delivery_person_id != delivery_person_id:
            delivery.delivery_person_id = delivery_person_id
            delivery.assigned_at = now

    db_order.status = status.value
    if delivery is not None:
        delivery.status = status.value
        if status == models.OrderStatus.DELIVERED:
            delivery.actual_delivery = now

    # Una orden cancelada anula su factura pendiente o vencida
    if status == models.OrderStatus.CANCELLED:
        invoice = await get_invoice_by_order(db, order_id)
        if invoice and invoice.status != models.InvoiceStatus.PAID.value:
            invoice.status = models.InvoiceStatus.CANCELLED.value
            logger.info(f"🚫 Factura {invoice.invoice_number} anulada por cancelación de la orden")

    await db.commit()
    logger.info(f"🔄 Orden {order_id} -> {status.value}")
    return await get_order_by_id(db, order_id)

# --- FACTURAS ---

async def get_invoice_by_id(db: AsyncSession, invoice_id: str):
    query = (
        select(models.Invoice)
        .filter(models.Invoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalars().first()

async def get_invoice_by_order(db: AsyncSession, order_id: str):
    query = select(models.Invoice).filter(models.Invoice.order_id == order_id)
    result = await db.execute(query)
    return result.scalars().first()

async def get_all_invoices(db: AsyncSession, status: Optional[str] = None, customer_id: Optional[str] = None):
    query = select(models.Invoice)
    if status:
        query = query.filter(models.Invoice.status == status)
    if customer_id:
        query = query.filter(models.Invoice.customer_id == customer_id)
    query = query.order_by(models.Invoice.created_at.desc()).execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().all()

async def get_customer_invoices(db: AsyncSession, customer_id: str, status: Optional[str] = None):
    return await get_all_invoices(db, status=status, customer_id=customer_id)

async def get_next_invoice_number(db: AsyncSession) -> str:
    """Consecutivo FAC-000001, FAC-000002... a partir del mayor emitido."""
    last = (await db.execute(select(func.max(models.Invoice.invoice_number)))).scalar()
    sequence = int(last.split("-")[-1]) + 1 if last else 1
    return f"FAC-{sequence:06d}"

async def create_invoice(db: AsyncSession, data: schemas.InvoiceCreate, today: Optional[date] = None):
    """
    Factura una orden. El total de la orden ya incluye el IVA, así que el
    impuesto se extrae: tax = total * TAX_RATE / (100 + TAX_RATE).
    """
    order = await get_order_by_id(db, data.order_id)
    if not order:
        raise ServiceError(ErrorKind.ORDER_NOT_FOUND)
    if order.status == models.OrderStatus.CANCELLED.value:
        raise ServiceError(ErrorKind.INVALID_STATUS, "No se puede facturar una orden cancelada")
    if await get_invoice_by_order(db, order.id):
        raise ServiceError(ErrorKind.INVOICE_EXISTS)

    total = round_money(order.total_amount)
    tax = round_money(total * TAX_RATE / (Decimal(100) + TAX_RATE))
    issue_date = today or date.today()
    due_days = data.due_days if data.due_days is not None else INVOICE_DUE_DAYS

    db_invoice = models.Invoice(
        order_id=order.id,
        customer_id=order.customer_id,
        invoice_number=await get_next_invoice_number(db),
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=due_days),
        total_amount=total,
        tax_amount=tax,
        status=models.InvoiceStatus.PENDING.value
    )
    db.add(db_invoice)
    try:
        await db.commit()
    except IntegrityError as e:
        # Otra factura para la misma orden (o el mismo consecutivo) ganó la carrera
        await db.rollback()
        logger.warning(f"⚠️ Factura duplicada para la orden {order.id}: {e}")
        raise ServiceError(ErrorKind.INVOICE_EXISTS)

    logger.info(f"🧾 Factura {db_invoice.invoice_number} emitida para la orden {order.id}")
    return await get_invoice_by_id(db, db_invoice.id)

async def pay_invoice(db: AsyncSession, invoice_id: str):
    """Marca la factura como pagada. Pagar una factura ya pagada no cambia nada."""
    invoice = await get_invoice_by_id(db, invoice_id)
    if not invoice:
        return None
    if invoice.status == models.InvoiceStatus.CANCELLED.value:
        raise ServiceError(ErrorKind.INVALID_STATUS, "La factura está cancelada")
    if invoice.status == models.InvoiceStatus.PAID.value:
        return invoice

    invoice.status = models.InvoiceStatus.PAID.value
    invoice.paid_at = datetime.utcnow()
    await db.commit()
    logger.info(f"💰 Factura {invoice.invoice_number} pagada")
    return await get_invoice_by_id(db, invoice_id)

async def mark_overdue_invoices(db: AsyncSession, today: Optional[date] = None) -> int:
    """Pasa a `vencida` las facturas pendientes cuya fecha de vencimiento ya pasó."""
    today = today or date.today()
    stmt = (
        update(models.Invoice)
        .where(
            models.Invoice.status == models.InvoiceStatus.PENDING.value,
            models.Invoice.due_date < today
        )
        .values(status=models.InvoiceStatus.OVERDUE.value)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    if result.rowcount:
        logger.info(f"⏰ {result.rowcount} facturas marcadas como vencidas")
    return result.rowcount

# --- DOMICILIOS ---

async def get_all_deliveries(db: AsyncSession, delivery_person_id: Optional[str] = None):
    query = select(models.Delivery)
    if delivery_person_id:
        query = query.filter(models.Delivery.delivery_person_id == delivery_person_id)
    query = query.order_by(models.Delivery.assigned_at.desc()).execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().all()
