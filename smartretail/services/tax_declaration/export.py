"""Declaration export to CSV and PDF.

CSV is a header plus one row, UTF-8 with a BOM so spreadsheet tools pick the
right encoding; line item groups appear as totals. Internal notes are never
exported. PDF is a ReportLab canvas rendering on A4 that flows onto
additional pages when the notes are long.
"""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from io import BytesIO, StringIO
from typing import TYPE_CHECKING

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from smartretail.core.config import settings
from smartretail.core.exceptions import DeclarationValidationError
from smartretail.core.logger import declaration_context

from .computations import format_money, format_quantity, format_rate
from .line_items import CATEGORY_NAMES, line_item_totals
from .period_utils import format_period_label

if TYPE_CHECKING:
    from smartretail.models.store_models import Store
    from smartretail.models.tax_models import TaxDeclaration

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "pdf")
CONTENT_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "pdf": "application/pdf",
}
CSV_FIELDS = [
    "id",
    "store_id",
    "period_type",
    "period_key",
    "period_label",
    "version",
    "original_id",
    "is_clone",
    "status",
    "system_revenue",
    "declared_revenue",
    "gtgt_rate",
    "tncn_rate",
    "gtgt_amount",
    "tncn_amount",
    "total_tax",
    "is_first_time",
    "supplement_number",
    "taxpayer_name",
    "special_consumption_tax_total",
    "environmental_tax_total",
    "created_by",
    "created_at",
    "updated_at",
    "notes",
]
BOM = "\ufeff"

# Page geometry (points)
PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_X = 40
TOP_Y = PAGE_HEIGHT - 42
BOTTOM_Y = 60
LINE_HEIGHT = 16


@dataclass(frozen=True)
class ExportedFile:
    filename: str
    content_type: str
    content: bytes


def export_filename(record: TaxDeclaration, fmt: str) -> str:
    safe_key = record.period_key.replace("/", "-").replace(" ", "")
    return f"tax-declaration-{safe_key}-v{record.version}.{fmt}"


def _csv_row(record: TaxDeclaration) -> dict[str, str]:
    totals = line_item_totals(record)
    return {
        "id": str(record.id),
        "store_id": str(record.store_id),
        "period_type": record.period_type,
        "period_key": record.period_key,
        "period_label": format_period_label(record.period_type, record.period_key),
        "version": str(record.version),
        "original_id": "" if record.original_id is None else str(record.original_id),
        "is_clone": "true" if record.is_clone else "false",
        "status": record.status,
        "system_revenue": format_money(record.system_revenue),
        "declared_revenue": format_money(record.declared_revenue),
        "gtgt_rate": format_rate(record.gtgt_rate),
        "tncn_rate": format_rate(record.tncn_rate),
        "gtgt_amount": format_money(record.gtgt_amount),
        "tncn_amount": format_money(record.tncn_amount),
        "total_tax": format_money(record.total_tax),
        "is_first_time": "true" if record.is_first_time else "false",
        "supplement_number": str(record.supplement_number or 0),
        "taxpayer_name": (record.taxpayer_info or {}).get("name", ""),
        "special_consumption_tax_total": format_money(totals["special_consumption_tax"]),
        "environmental_tax_total": format_money(totals["environmental_tax"]),
        "created_by": str(record.created_by),
        "created_at": record.created_at.isoformat() if record.created_at else "",
        "updated_at": record.updated_at.isoformat() if record.updated_at else "",
        "notes": record.notes or "",
    }


def render_csv(record: TaxDeclaration) -> bytes:
    buf = StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    writer.writerow(_csv_row(record))
    return (BOM + buf.getvalue()).encode("utf-8")


class _PdfWriter:
    """Line-oriented canvas wrapper that starts a new page when space runs out."""

    def __init__(self, buf: BytesIO, title: str):
        self.canvas = canvas.Canvas(buf, pagesize=A4)
        self.canvas.setTitle(title)
        self.page = 1
        self.y = TOP_Y
        self._decorate_page()

    def _decorate_page(self) -> None:
        c = self.canvas
        if settings.PDF_WATERMARK_ENABLED:
            c.saveState()
            c.setFont("Helvetica", 60)
            c.setFillColorRGB(0.85, 0.85, 0.85)
            c.translate(300, 400)
            c.rotate(30)
            c.drawString(-200, 0, settings.PDF_WATERMARK_TEXT[:30])
            c.restoreState()
        c.setFont("Helvetica-Oblique", 9)
        c.drawRightString(PAGE_WIDTH - MARGIN_X, 30, f"Page {self.page}")

    def _ensure_space(self, height: float) -> None:
        if self.y - height < BOTTOM_Y:
            self.canvas.showPage()
            self.page += 1
            self.y = TOP_Y
            self._decorate_page()

    def heading(self, text: str, size: int = 12) -> None:
        self._ensure_space(LINE_HEIGHT + 8)
        self.y -= 8
        self.canvas.setFont("Helvetica-Bold", size)
        self.canvas.drawString(MARGIN_X, self.y, text)
        self.y -= LINE_HEIGHT

    def line(self, text: str, size: int = 10, indent: int = 0) -> None:
        self._ensure_space(LINE_HEIGHT)
        self.canvas.setFont("Helvetica", size)
        self.canvas.drawString(MARGIN_X + indent, self.y, text)
        self.y -= LINE_HEIGHT

    def pair(self, label: str, value: str) -> None:
        self._ensure_space(LINE_HEIGHT)
        self.canvas.setFont("Helvetica", 10)
        self.canvas.drawString(MARGIN_X + 10, self.y, label)
        self.canvas.drawRightString(PAGE_WIDTH - MARGIN_X, self.y, value)
        self.y -= LINE_HEIGHT

    def paragraph(self, text: str, size: int = 10) -> None:
        width = PAGE_WIDTH - 2 * MARGIN_X - 10
        for raw_line in text.splitlines() or [""]:
            for wrapped in simpleSplit(raw_line, "Helvetica", size, width) or [""]:
                self.line(wrapped, size=size, indent=10)

    def finish(self) -> None:
        self.canvas.showPage()
        self.canvas.save()


def _taxpayer_section(pdf: _PdfWriter, record: TaxDeclaration, store: Store | None) -> None:
    # Snapshot taken at creation wins over the store's current details
    info = dict(record.taxpayer_info or {})
    if store is not None:
        info.setdefault("store_name", store.name or "")
        if not info.get("tax_code"):
            info["tax_code"] = store.tax_code or ""
        if not info.get("business_address"):
            info["business_address"] = store.address or ""
    labels = (
        ("name", "Taxpayer"),
        ("store_name", "Store"),
        ("tax_code", "Tax code"),
        ("business_sector", "Business sector"),
        ("business_address", "Address"),
        ("bank_account", "Bank account"),
        ("phone", "Phone"),
        ("email", "Email"),
    )
    rows = [(label, info[key]) for key, label in labels if info.get(key)]
    if not rows:
        return
    pdf.heading("Taxpayer")
    for label, value in rows:
        pdf.line(f"{label}: {value}", indent=10)


def render_pdf(record: TaxDeclaration, store: Store | None = None) -> bytes:
    label = format_period_label(record.period_type, record.period_key)
    buf = BytesIO()
    pdf = _PdfWriter(buf, title=f"Tax declaration {record.period_key} v{record.version}")

    pdf.heading("TAX DECLARATION", size=16)
    pdf.line(f"Period: {label}")
    kind = f"Clone of #{record.original_id}" if record.is_clone else "Original"
    pdf.line(f"Version: {record.version} ({kind})")
    pdf.line(f"Status: {record.status}")
    filing = "First filing" if record.is_first_time else f"Supplement no. {record.supplement_number}"
    pdf.line(f"Filing: {filing}")
    pdf.line(f"Prepared by: user #{record.created_by}")
    if record.created_at:
        pdf.line(f"Created at: {record.created_at.strftime('%Y-%m-%d %H:%M')} UTC")

    _taxpayer_section(pdf, record, store)

    pdf.heading("Revenue")
    pdf.pair("System revenue", format_money(record.system_revenue))
    pdf.pair("Declared revenue", format_money(record.declared_revenue))

    if record.category_revenues:
        pdf.heading("Revenue by business category")
        for row in record.category_revenues:
            pdf.line(f"{row.category_code} {CATEGORY_NAMES.get(row.category, row.category)}", size=9)
            pdf.pair("    Revenue", format_money(row.revenue))
            pdf.pair("    VAT (GTGT)", format_money(row.gtgt_tax))
            pdf.pair("    Personal income tax (TNCN)", format_money(row.tncn_tax))

    pdf.heading("Taxes")
    pdf.pair(f"VAT (GTGT) at {format_rate(record.gtgt_rate)}%", format_money(record.gtgt_amount))
    pdf.pair(f"Personal income tax (TNCN) at {format_rate(record.tncn_rate)}%", format_money(record.tncn_amount))
    pdf.pair("Total tax payable", format_money(record.total_tax))

    if record.special_consumption_items:
        pdf.heading("Special consumption tax")
        for item in record.special_consumption_items:
            unit = f" ({item.unit})" if item.unit else ""
            pdf.pair(
                f"{item.item_code} {item.item_name}{unit} at {format_rate(item.tax_rate)}% of {format_money(item.revenue)}",
                format_money(item.tax_amount),
            )

    if record.environmental_items:
        pdf.heading("Resource and environmental taxes")
        for item in record.environmental_items:
            unit = f" {item.unit}" if item.unit else ""
            pdf.pair(
                f"{item.item_code} {item.item_name}: {format_quantity(item.quantity)}{unit} x {format_money(item.unit_price)}",
                format_money(item.tax_amount),
            )

    if record.notes:
        pdf.heading("Notes")
        pdf.paragraph(record.notes)

    pdf.finish()
    return buf.getvalue()


def render_declaration(record: TaxDeclaration, fmt: str, store: Store | None = None) -> ExportedFile:
    if fmt == "csv":
        content = render_csv(record)
    elif fmt == "pdf":
        content = render_pdf(record, store=store)
    else:
        raise DeclarationValidationError(f"Unsupported export format '{fmt}'", field="format")
    logger.info(
        "Rendered declaration %s as %s (%d bytes)",
        record.id,
        fmt,
        len(content),
        extra=declaration_context(record, export_format=fmt),
    )
    return ExportedFile(filename=export_filename(record, fmt), content_type=CONTENT_TYPES[fmt], content=content)
