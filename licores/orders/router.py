from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from licores_common.security import Permissions, UserPayload, has_access
from ..database import get_db
from ..exceptions import ErrorKind, ServiceError
from ..auth.deps import get_current_user, RequirePermission
from ..auth.models import UserRole
from ..auth.schemas import UserResponse
from ..auth.services import UserService
from ..inventory.schemas import PaginatedResponse
from . import crud, schemas
from .pdf_generator import generate_invoice_pdf

router = APIRouter(prefix="/orders", tags=["Orders"])

def _only_own(user: UserPayload) -> bool:
    """True cuando el usuario solo puede ver sus propios registros."""
    return has_access(user, [UserRole.CLIENTE.value])

# --- CLIENTES Y DOMICILIARIOS ---

@router.get("/customers", response_model=List[UserResponse])
async def read_customers(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CUSTOMER_READ))
):
    return await UserService.get_customers(db, search)

@router.get("/delivery-people", response_model=List[UserResponse])
async def read_delivery_people(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DELIVERY_UPDATE))
):
    return await UserService.get_delivery_people(db)

# --- FACTURAS ---

@router.get("/invoices", response_model=List[schemas.InvoiceResponse])
async def read_invoices(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    """
    **Listar Facturas**

    El personal con `invoice:read` ve todas; un cliente solo las suyas.
    """
    if user.has_permission(Permissions.INVOICE_READ):
        return await crud.get_all_invoices(db, status=status)
    if user.has_permission(Permissions.INVOICE_READ_OWN):
        return await crud.get_customer_invoices(db, user.user_id, status=status)
    raise ServiceError(ErrorKind.FORBIDDEN)

@router.post("/invoices", response_model=schemas.InvoiceResponse, status_code=201)
async def create_invoice(
    invoice: schemas.InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.INVOICE_CREATE))
):
    """
    **Emitir Factura**

    Factura una orden existente. El IVA se extrae del total de la orden.

    **Errores:**
    - `404 Not Found`: Si la orden no existe.
    - `400 Bad Request`: Si la orden ya tiene factura o está cancelada.
    """
    return await crud.create_invoice(db, invoice)

@router.post("/invoices/mark-overdue", response_model=schemas.OverdueResult)
async def mark_overdue(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.INVOICE_PAY))
):
    """Pasa a `vencida` las facturas pendientes con fecha de vencimiento cumplida."""
    return {"updated": await crud.mark_overdue_invoices(db)}

@router.post("/invoices/{invoice_id}/pay", response_model=schemas.InvoiceResponse)
async def pay_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.INVOICE_PAY))
):
    invoice = await crud.pay_invoice(db, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Factura no encontrada")
    return invoice

@router.get("/invoices/{invoice_id}/pdf")
async def get_invoice_pdf(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    """
    **Descargar PDF de Factura**

    Retorna un stream de bytes (application/pdf).
    """
    invoice = await crud.get_invoice_by_id(db, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Factura no encontrada")

    can_read_all = user.has_permission(Permissions.INVOICE_READ)
    is_owner = user.has_permission(Permissions.INVOICE_READ_OWN) and invoice.customer_id == user.user_id
    if not (can_read_all or is_owner):
        raise ServiceError(ErrorKind.FORBIDDEN)

    pdf_buffer = generate_invoice_pdf(invoice, items=invoice.order.items if invoice.order else [])

    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={invoice.invoice_number}.pdf"}
    )

# --- DOMICILIOS ---

@router.get("/deliveries", response_model=List[schemas.DeliveryResponse])
async def read_deliveries(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DELIVERY_READ))
):
    """Un domiciliario solo ve los domicilios que tiene asignados."""
    if has_access(user, [UserRole.DOMICILIARIO.value]):
        return await crud.get_all_deliveries(db, delivery_person_id=user.user_id)
    return await crud.get_all_deliveries(db)

# --- ORDENES ---

@router.get("", response_model=PaginatedResponse[schemas.OrderResponse])
async def read_orders(
    page: int = 1,
    limit: int = 50,
    status: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    """
    **Listar Órdenes**

    Con `order:read` se listan todas (filtro `search` por nombre o email del
    cliente). Un cliente solo recibe las suyas.
    """
    if user.has_permission(Permissions.ORDER_READ):
        return await crud.get_all_orders(db, page=page, limit=limit, status=status, search=search)
    if user.has_permission(Permissions.ORDER_READ_OWN):
        return await crud.get_customer_orders(db, user.user_id, page=page, limit=limit, status=status)
    raise ServiceError(ErrorKind.FORBIDDEN)

@router.post("", response_model=schemas.OrderResponse, status_code=201)
async def create_order(
    order: schemas.OrderCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.ORDER_CREATE))
):
    """
    **Crear Orden**

    Un cliente siempre compra a su nombre; el personal debe indicar `customer_id`.

    **Errores:**
    - `400 Bad Request`: Si los items no se pudieron guardar (la orden no queda creada).
    """
    if _only_own(user):
        customer_id = user.user_id
    elif order.customer_id:
        customer_id = order.customer_id
    else:
        raise HTTPException(status_code=422, detail="customer_id es obligatorio")

    return await crud.create_order(db, customer_id, order)

@router.get("/{order_id}", response_model=schemas.OrderResponse)
async def read_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    order = await crud.get_order_by_id(db, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Orden no encontrada")

    can_read_all = user.has_permission(Permissions.ORDER_READ)
    is_owner = user.has_permission(Permissions.ORDER_READ_OWN) and order.customer_id == user.user_id
    if not (can_read_all or is_owner):
        raise ServiceError(ErrorKind.FORBIDDEN)
    return order

@router.patch("/{order_id}/status", response_model=schemas.OrderResponse)
async def update_order_status(
    order_id: str,
    update: schemas.OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    """
    **Cambiar estado**

    Si se envía `delivery_person_id` la orden queda asignada a ese domiciliario.
    Un domiciliario solo puede cambiar el estado de las órdenes que tiene
    asignadas, sin reasignarlas.
    """
    if not user.has_permission(Permissions.ORDER_UPDATE):
        current = await crud.get_order_by_id(db, order_id)
        is_assigned = (
            user.has_permission(Permissions.DELIVERY_UPDATE)
            and current is not None
            and current.delivery_person_id == user.user_id
            and update.delivery_person_id in (None, user.user_id)
        )
        if not is_assigned:
            raise ServiceError(ErrorKind.FORBIDDEN)

    order = await crud.update_order_status(
        db, order_id, update.status,
        delivery_person_id=update.delivery_person_id,
        delivery_person_name=update.delivery_person_name
    )
    if order is None:
        raise HTTPException(status_code=404, detail="Orden no encontrada")
    return order
