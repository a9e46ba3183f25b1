from io import BytesIO
from decimal import Decimal
import os
import textwrap

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

PAGE_WIDTH, PAGE_HEIGHT = A4

# Estilos de fuente
FONT_NORMAL = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZE_S = 8
FONT_SIZE_M = 10
FONT_SIZE_L = 14

BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Distribuidora de Licores")
BUSINESS_NIT = os.getenv("BUSINESS_NIT", "")
BUSINESS_ADDRESS = os.getenv("BUSINESS_ADDRESS", "")

class InvoicePdfGenerator:
    """Factura en hoja A4 a partir de una factura ORM con su orden cargada."""

    def __init__(self, buffer, invoice, items):
        self.c = canvas.Canvas(buffer, pagesize=A4)
        self.invoice = invoice
        self.items = items
        self.left_margin = 20 * mm
        self.right_margin = PAGE_WIDTH - (20 * mm)
        self.bottom_margin = 25 * mm
        self.cursor_y = PAGE_HEIGHT - (20 * mm)

    def _move_down(self, amount):
        self.cursor_y -= amount
        if self.cursor_y < self.bottom_margin:
            self.c.showPage()
            self.cursor_y = PAGE_HEIGHT - (20 * mm)

    def _draw_text_left(self, text, font=FONT_NORMAL, size=FONT_SIZE_M):
        self.c.setFont(font, size)
        self.c.drawString(self.left_margin, self.cursor_y, text)
        self._move_down(size + 3)

    def _draw_line(self):
        self._move_down(2)
        self.c.line(self.left_margin, self.cursor_y, self.right_margin, self.cursor_y)
        self._move_down(12)

    def _draw_total(self, label, amount, font=FONT_NORMAL, size=FONT_SIZE_M):
        self.c.setFont(font, size)
        self.c.drawRightString(self.right_margin - (35 * mm), self.cursor_y, label)
        self.c.drawRightString(self.right_margin, self.cursor_y, self._format_currency(amount))
        self._move_down(size + 4)

    @staticmethod
    def _format_currency(amount):
        return f"$ {Decimal(amount or 0):,.2f}"

    def generate(self):
        invoice = self.invoice

        # Encabezado
        self._draw_text_left(BUSINESS_NAME, FONT_BOLD, FONT_SIZE_L)
        if BUSINESS_NIT:
            self._draw_text_left(f"NIT: {BUSINESS_NIT}", size=FONT_SIZE_S)
        for line in textwrap.wrap(BUSINESS_ADDRESS, width=80):
            self._draw_text_left(line, size=FONT_SIZE_S)

        self.c.setFont(FONT_BOLD, FONT_SIZE_L)
        self.c.drawRightString(self.right_margin, PAGE_HEIGHT - (20 * mm), f"FACTURA {invoice.invoice_number}")
        self._draw_line()

        # Datos de la factura
        self._draw_text_left(f"Fecha de emisión: {invoice.issue_date.strftime('%d/%m/%Y')}")
        self._draw_text_left(f"Fecha de vencimiento: {invoice.due_date.strftime('%d/%m/%Y')}")
        self._draw_text_left(f"Estado: {invoice.status.upper()}")
        self._move_down(6)

        # Cliente
        customer = invoice.customer
        self._draw_text_left("CLIENTE", FONT_BOLD)
        self._draw_text_left(customer.name if customer else invoice.customer_id)
        if customer and customer.email:
            self._draw_text_left(customer.email, size=FONT_SIZE_S)
        address = (invoice.order.shipping_address if invoice.order else None) or (customer.address if customer else None)
        for line in textwrap.wrap(address or "", width=80):
            self._draw_text_left(line, size=FONT_SIZE_S)
        self._draw_line()

        # Items
        self.c.setFont(FONT_BOLD, FONT_SIZE_S)
        self.c.drawString(self.left_margin, self.cursor_y, "DESCRIPCIÓN")
        self.c.drawRightString(self.right_margin - (60 * mm), self.cursor_y, "CANT")
        self.c.drawRightString(self.right_margin - (30 * mm), self.cursor_y, "PRECIO")
        self.c.drawRightString(self.right_margin, self.cursor_y, "SUBTOTAL")
        self._move_down(14)

        for item in self.items:
            self.c.setFont(FONT_NORMAL, FONT_SIZE_M)
            self.c.drawString(self.left_margin, self.cursor_y, (item.product_name or item.product_id)[:50])
            self.c.drawRightString(self.right_margin - (60 * mm), self.cursor_y, str(item.quantity))
            self.c.drawRightString(self.right_margin - (30 * mm), self.cursor_y, self._format_currency(item.price))
            self.c.drawRightString(self.right_margin, self.cursor_y, self._format_currency(item.subtotal))
            self._move_down(FONT_SIZE_M + 4)

        self._draw_line()

        # Totales (el IVA va incluido en el total)
        self._draw_total("Subtotal:", invoice.subtotal)
        self._draw_total("IVA:", invoice.tax_amount)
        self._draw_total("TOTAL:", invoice.total_amount, FONT_BOLD, FONT_SIZE_L - 2)

        self._move_down(20)
        self._draw_text_left("Gracias por su compra", FONT_BOLD)

        self.c.showPage()
        self.c.save()

def generate_invoice_pdf(invoice, items: list):
    buffer = BytesIO()
    generator = InvoicePdfGenerator(buffer, invoice, items)
    generator.generate()
    buffer.seek(0)
    return buffer
