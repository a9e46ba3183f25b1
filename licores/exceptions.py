import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Tipos de fallo que la capa de servicios puede devolver."""
    # Autenticación
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_NOT_CONFIRMED = "EMAIL_NOT_CONFIRMED"
    RATE_LIMITED = "RATE_LIMITED"
    USER_ALREADY_REGISTERED = "USER_ALREADY_REGISTERED"
    PROFILE_WRITE_FAILED = "PROFILE_WRITE_FAILED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Inventario
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    WAREHOUSE_NOT_FOUND = "WAREHOUSE_NOT_FOUND"
    DUPLICATE_SKU = "DUPLICATE_SKU"
    DUPLICATE_WAREHOUSE = "DUPLICATE_WAREHOUSE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    STOCK_CONFLICT = "STOCK_CONFLICT"
    INVALID_TRANSFER = "INVALID_TRANSFER"
    INVALID_QUANTITY = "INVALID_QUANTITY"

    # Pedidos y facturas
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_ITEMS_FAILED = "ORDER_ITEMS_FAILED"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    INVOICE_EXISTS = "INVOICE_EXISTS"
    INVALID_STATUS = "INVALID_STATUS"
    INVALID_DELIVERY_PERSON = "INVALID_DELIVERY_PERSON"

    UNKNOWN = "UNKNOWN"


# Mensajes para el usuario final. Solo se usan en la frontera HTTP.
ERROR_MESSAGES = {
    ErrorKind.INVALID_CREDENTIALS: "Credenciales inválidas. Verifica tu email y contraseña.",
    ErrorKind.EMAIL_NOT_CONFIRMED: "Email no confirmado. Verifica tu bandeja de entrada.",
    ErrorKind.RATE_LIMITED: "Demasiados intentos fallidos. Intenta de nuevo más tarde.",
    ErrorKind.USER_ALREADY_REGISTERED: "Este email ya está registrado.",
    ErrorKind.PROFILE_WRITE_FAILED: "Error creando el perfil del usuario.",
    ErrorKind.NOT_AUTHENTICATED: "Credenciales inválidas o expiradas",
    ErrorKind.FORBIDDEN: "Acceso denegado",
    ErrorKind.USER_NOT_FOUND: "Usuario no encontrado",
    ErrorKind.PRODUCT_NOT_FOUND: "Producto no encontrado",
    ErrorKind.WAREHOUSE_NOT_FOUND: "Almacén no encontrado",
    ErrorKind.DUPLICATE_SKU: "Ya existe un producto con ese SKU",
    ErrorKind.DUPLICATE_WAREHOUSE: "Ya existe un almacén con ese identificador",
    ErrorKind.INSUFFICIENT_STOCK: "Inventario insuficiente para la operación",
    ErrorKind.STOCK_CONFLICT: "El inventario cambió mientras se editaba. Recarga e intenta de nuevo.",
    ErrorKind.INVALID_TRANSFER: "Transferencia inválida",
    ErrorKind.INVALID_QUANTITY: "Cantidad inválida",
    ErrorKind.ORDER_NOT_FOUND: "Orden no encontrada",
    ErrorKind.ORDER_ITEMS_FAILED: "No se pudieron registrar los productos de la orden",
    ErrorKind.INVOICE_NOT_FOUND: "Factura no encontrada",
    ErrorKind.INVOICE_EXISTS: "La orden ya tiene una factura",
    ErrorKind.INVALID_STATUS: "Estado inválido para la operación",
    ErrorKind.INVALID_DELIVERY_PERSON: "El usuario asignado no es domiciliario",
    ErrorKind.UNKNOWN: "Ocurrió un error inesperado",
}

ERROR_STATUS_CODES = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.EMAIL_NOT_CONFIRMED: 403,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.USER_ALREADY_REGISTERED: 400,
    ErrorKind.PROFILE_WRITE_FAILED: 500,
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.PRODUCT_NOT_FOUND: 404,
    ErrorKind.WAREHOUSE_NOT_FOUND: 404,
    ErrorKind.DUPLICATE_SKU: 400,
    ErrorKind.DUPLICATE_WAREHOUSE: 400,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.STOCK_CONFLICT: 409,
    ErrorKind.INVALID_TRANSFER: 400,
    ErrorKind.INVALID_QUANTITY: 400,
    ErrorKind.ORDER_NOT_FOUND: 404,
    ErrorKind.ORDER_ITEMS_FAILED: 400,
    ErrorKind.INVOICE_NOT_FOUND: 404,
    ErrorKind.INVOICE_EXISTS: 400,
    ErrorKind.INVALID_STATUS: 400,
    ErrorKind.INVALID_DELIVERY_PERSON: 400,
    ErrorKind.UNKNOWN: 500,
}


class ServiceError(Exception):
    """Fallo tipado de la capa de servicios."""

    def __init__(self, kind: ErrorKind, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        super().__init__(detail or kind.value)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES.get(self.kind, ERROR_MESSAGES[ErrorKind.UNKNOWN])

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES.get(self.kind, 500)
