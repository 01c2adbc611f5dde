from __future__ import annotations

import logging
import os
from datetime import datetime
from decimal import Decimal

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from backend.app.core import config
from backend.app.db.models.models_v1 import Event, Invoice

logger = logging.getLogger(__name__)

LABELS = {
    "en": {
        "invoice": "INVOICE",
        "invoice_no": "Invoice No",
        "date": "Date",
        "bill_to": "Bill To",
        "gstin": "GSTIN",
        "description": "Description",
        "unit": "Unit",
        "qty": "Qty",
        "rate": "Rate",
        "amount": "Amount",
        "tax": "Tax",
        "subtotal": "Subtotal",
        "discount": "Discount",
        "round_off": "Round Off",
        "grand_total": "Grand Total",
        "paid": "Paid",
        "pending": "Pending",
        "thank_you": "Thank you for your business!",
    },
    "hi": {
        "invoice": "चालान",
        "invoice_no": "चालान संख्या",
        "date": "दिनांक",
        "bill_to": "बिल प्राप्तकर्ता",
        "gstin": "जीएसटीआईएन",
        "description": "विवरण",
        "unit": "इकाई",
        "qty": "मात्रा",
        "rate": "दर",
        "amount": "राशि",
        "tax": "कर",
        "subtotal": "उप योग",
        "discount": "छूट",
        "round_off": "राउंड ऑफ",
        "grand_total": "कुल योग",
        "paid": "भुगतान",
        "pending": "बकाया",
        "thank_you": "आपके व्यापार के लिए धन्यवाद!",
    },
}


class _Document(FPDF):
    """FPDF with an optional Unicode font; core Helvetica otherwise."""

    def __init__(self, title: str, font_path: str | None = None):
        super().__init__()
        self.doc_title = title
        self.body_font = "Helvetica"
        self.unicode_font = False

        if font_path and os.path.exists(font_path):
            self.add_font("Body", "", font_path)
            self.add_font("Body", "B", font_path)
            self.add_font("Body", "I", font_path)
            self.body_font = "Body"
            self.unicode_font = True
        elif font_path:
            logger.warning("PDF font %s not found, falling back to Helvetica", font_path)

        self.set_auto_page_break(auto=True, margin=20)
        self.add_page()

    def footer(self):
        self.set_y(-15)
        self.set_font(self.body_font, "I", 8)
        self.cell(0, 10, self.text_safe(f"{self.doc_title} - page {self.page_no()}"), align="C")

    def text_safe(self, value) -> str:
        text = str(value if value is not None else "")
        if self.unicode_font:
            return text
        return text.encode("latin-1", "replace").decode("latin-1")

    def rupees(self, amount) -> str:
        symbol = "₹" if self.unicode_font else "Rs."
        return f"{symbol}{Decimal(amount or 0):.2f}"

    def line_cell(self, w: float, h: float, text: str, align: str = "L"):
        self.cell(w, h, self.text_safe(text), align=align, new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def _fmt_date(value: datetime | None) -> str:
    return value.strftime("%d-%m-%Y") if value else "-"


def invoice_pdf(invoice: Invoice, language: str = "en", with_gst: bool | None = None) -> bytes:
    gst = invoice.with_gst if with_gst is None else with_gst

    font_path = config.PDF_FONT_PATH
    if language == "hi" and not (font_path and os.path.exists(font_path)):
        logger.warning("Hindi invoice requested without PDF_FONT_PATH, using English labels")
        language = "en"
    t = LABELS.get(language, LABELS["en"])

    pdf = _Document(f"{t['invoice']} {invoice.number}", font_path)

    pdf.set_font(pdf.body_font, "B", 18)
    pdf.line_cell(0, 10, config.COMPANY_NAME)
    pdf.set_font(pdf.body_font, "B", 14)
    pdf.line_cell(0, 8, t["invoice"])

    pdf.set_font(pdf.body_font, "", 11)
    pdf.line_cell(0, 6, f"{t['invoice_no']}: {invoice.number}")
    pdf.line_cell(0, 6, f"{t['date']}: {_fmt_date(invoice.date)}")
    pdf.ln(4)

    client = invoice.client
    pdf.set_font(pdf.body_font, "B", 12)
    pdf.line_cell(0, 7, t["bill_to"])
    pdf.set_font(pdf.body_font, "", 11)
    pdf.line_cell(0, 6, client.name)
    pdf.line_cell(0, 6, client.phone)
    if client.address:
        pdf.line_cell(0, 6, client.address)
    if gst and client.gst_number:
        pdf.line_cell(0, 6, f"{t['gstin']}: {client.gst_number}")
    pdf.ln(4)

    cols = [(70, t["description"]), (20, t["unit"]), (20, t["qty"]), (30, t["rate"]), (30, t["amount"])]
    if gst:
        cols.append((20, t["tax"]))

    pdf.set_font(pdf.body_font, "B", 10)
    for width, label in cols:
        pdf.cell(width, 8, pdf.text_safe(label), border=1)
    pdf.ln(8)

    pdf.set_font(pdf.body_font, "", 9)
    for item in invoice.items:
        line_amount = Decimal(item.qty) * Decimal(item.rate)
        name = item.description or (item.product.name if item.product else "-")
        pdf.cell(70, 7, pdf.text_safe(name[:40]), border=1)
        pdf.cell(20, 7, pdf.text_safe(item.unit_type.value), border=1)
        pdf.cell(20, 7, str(item.qty), border=1, align="R")
        pdf.cell(30, 7, pdf.rupees(item.rate), border=1, align="R")
        pdf.cell(30, 7, pdf.rupees(line_amount), border=1, align="R")
        if gst:
            pct = Decimal(item.tax_pct) if item.tax_pct is not None else config.DEFAULT_GST_PCT
            pdf.cell(20, 7, pdf.rupees(line_amount * pct / 100), border=1, align="R")
        pdf.ln(7)

    pdf.ln(4)
    rows = [(t["subtotal"], pdf.rupees(invoice.sub_total))]
    if gst and invoice.tax:
        rows.append((t["tax"], pdf.rupees(invoice.tax)))
    if invoice.discount:
        rows.append((t["discount"], "-" + pdf.rupees(invoice.discount)))
    if invoice.round_off:
        rows.append((t["round_off"], pdf.rupees(invoice.round_off)))

    pdf.set_font(pdf.body_font, "", 10)
    for label, value in rows:
        pdf.cell(140, 6, pdf.text_safe(f"{label}:"), align="R")
        pdf.cell(30, 6, value, align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.set_font(pdf.body_font, "B", 12)
    pdf.cell(140, 8, pdf.text_safe(f"{t['grand_total']}:"), align="R")
    pdf.cell(30, 8, pdf.rupees(invoice.grand_total), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    if invoice.paid or invoice.pending:
        pdf.set_font(pdf.body_font, "", 10)
        for label, value in ((t["paid"], invoice.paid), (t["pending"], invoice.pending)):
            pdf.cell(140, 6, pdf.text_safe(f"{label}:"), align="R")
            pdf.cell(30, 6, pdf.rupees(value), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(10)
    pdf.set_font(pdf.body_font, "I", 10)
    pdf.line_cell(0, 8, t["thank_you"], align="C")

    return bytes(pdf.output())


def agreement_rows(event: Event) -> list[dict]:
    """Lines shown on the agreement: saved snapshot, else latest dispatch, else selections."""
    snap = event.agreement_snapshot or {}
    if snap.get("items"):
        return [
            {
                "name": it.get("name") or "-",
                "unit_type": it.get("unit_type") or "-",
                "qty": int(it.get("qty_to_send") or 0),
                "rate": Decimal(str(it.get("rate") or 0)),
            }
            for it in snap["items"]
        ]
    if event.dispatches:
        return [
            {"name": ln.name or "-", "unit_type": ln.unit_type or "-", "qty": ln.qty_to_send, "rate": Decimal(ln.rate)}
            for ln in event.dispatches[-1].lines
        ]
    return [
        {"name": s.name or "-", "unit_type": s.unit_type or "-", "qty": s.qty_to_send, "rate": Decimal(s.rate)}
        for s in event.selections
    ]


def agreement_pdf(event: Event) -> bytes:
    pdf = _Document("Agreement", config.PDF_FONT_PATH)

    pdf.set_font(pdf.body_font, "B", 16)
    pdf.line_cell(0, 10, "Terms & Conditions / Agreement", align="C")
    pdf.set_font(pdf.body_font, "", 11)
    pdf.line_cell(0, 6, config.COMPANY_NAME, align="C")
    pdf.ln(4)

    pdf.set_font(pdf.body_font, "B", 12)
    pdf.line_cell(0, 7, "Client:")
    pdf.set_font(pdf.body_font, "", 11)
    client = event.client
    pdf.line_cell(0, 6, client.name if client else "-")
    pdf.line_cell(0, 6, client.phone if client else "-")
    if client and client.address:
        pdf.line_cell(0, 6, client.address)
    pdf.ln(3)

    pdf.set_font(pdf.body_font, "B", 12)
    pdf.line_cell(0, 7, "Event:")
    pdf.set_font(pdf.body_font, "", 11)
    pdf.line_cell(0, 6, f"Schedule: {_fmt_date(event.date_from)} - {_fmt_date(event.date_to)}")
    if event.location:
        pdf.line_cell(0, 6, f"Venue: {event.location}")
    pdf.ln(3)

    pdf.set_font(pdf.body_font, "B", 12)
    pdf.line_cell(0, 7, "Terms:")
    pdf.set_font(pdf.body_font, "", 10)
    pdf.multi_cell(0, 5, pdf.text_safe(event.agreement_terms or "-"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(3)

    cols = [(80, "Item"), (25, "UOM"), (20, "Qty"), (30, "Rate"), (35, "Amount")]
    pdf.set_font(pdf.body_font, "B", 10)
    for width, label in cols:
        pdf.cell(width, 8, label, border=1)
    pdf.ln(8)

    pdf.set_font(pdf.body_font, "", 10)
    subtotal = Decimal("0")
    for row in agreement_rows(event):
        amount = (Decimal(row["qty"]) * row["rate"]).quantize(Decimal("0.01"))
        subtotal += amount
        pdf.cell(80, 7, pdf.text_safe(str(row["name"])[:45]), border=1)
        pdf.cell(25, 7, pdf.text_safe(row["unit_type"]), border=1)
        pdf.cell(20, 7, str(row["qty"]), border=1, align="R")
        pdf.cell(30, 7, pdf.rupees(row["rate"]), border=1, align="R")
        pdf.cell(35, 7, pdf.rupees(amount), border=1, align="R")
        pdf.ln(7)

    advance = Decimal(event.advance or 0)
    security = Decimal(event.security or 0)
    pdf.ln(3)
    for label, value in (("Subtotal", subtotal), ("Advance", advance), ("Security", security)):
        pdf.cell(155, 6, f"{label}:", align="R")
        pdf.cell(35, 6, pdf.rupees(value), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font(pdf.body_font, "B", 11)
    pdf.cell(155, 7, "Grand Total:", align="R")
    pdf.cell(35, 7, pdf.rupees(subtotal - advance - security), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(16)
    pdf.set_font(pdf.body_font, "", 10)
    pdf.cell(95, 6, "Client Signature:")
    pdf.cell(95, 6, "Company Signature:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.cell(95, 6, "____________________________")
    pdf.cell(95, 6, "____________________________", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    return bytes(pdf.output())
