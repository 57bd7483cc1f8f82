# vetclinic/services/invoice_pdf.py
from __future__ import annotations

from datetime import datetime
from html import escape
from decimal import Decimal
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from vetclinic.models.billing import Invoice


def _fmt_date(d) -> str:
    if not d:
        return "-"
    if isinstance(d, datetime):
        d = d.date()
    return d.strftime("%d/%m/%Y")


def _money(v) -> str:
    return f"{Decimal(v or 0):.2f}"


def _qty(v) -> str:
    # 2.00 -> "2", 1.50 -> "1.5"
    return f"{Decimal(v or 0).normalize():f}"


def build_invoice_pdf(
    invoice: Invoice,
    *,
    paid: Decimal,
    balance: Decimal,
    clinic_name: Optional[str] = None,
) -> bytes:
    """Printable A4 invoice: header, lines, tax breakdown and totals."""
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=16 * mm,
        rightMargin=16 * mm,
        topMargin=14 * mm,
        bottomMargin=14 * mm,
        title=f"Invoice {invoice.invoice_number}",
    )

    styles = getSampleStyleSheet()
    h1 = ParagraphStyle("h1", parent=styles["Heading1"], fontSize=14, spaceAfter=6)
    h2 = ParagraphStyle("h2", parent=styles["Heading2"], fontSize=10, spaceAfter=4)
    small = ParagraphStyle("small", parent=styles["Normal"], fontSize=8, textColor=colors.grey)
    normal = ParagraphStyle("normal", parent=styles["Normal"], fontSize=9)

    grid = TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0f172a")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#cbd5e1")),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8fafc")]),
    ])

    owner = invoice.owner
    patient = invoice.patient

    story = []
    if clinic_name:
        story.append(Paragraph(escape(clinic_name), h2))
    story.append(Paragraph(f"Invoice {invoice.invoice_number}", h1))
    story.append(
        Paragraph(
            f"<b>Status:</b> {invoice.status.value} &nbsp;&nbsp; "
            f"<b>Issue date:</b> {_fmt_date(invoice.issue_date)} &nbsp;&nbsp; "
            f"<b>Due date:</b> {_fmt_date(invoice.due_date)}",
            normal,
        ))
    client_line = f"<b>Client:</b> {escape(owner.full_name) if owner else '-'}"
    if owner and owner.tax_id:
        client_line += f" &nbsp;&nbsp; <b>Tax ID:</b> {escape(owner.tax_id)}"
    if patient:
        client_line += f" &nbsp;&nbsp; <b>Patient:</b> {escape(patient.name)}"
    story.append(Paragraph(client_line, normal))
    story.append(Spacer(1, 6))

    data = [["Description", "Qty", "Unit price", "Tax %", "Net", "Tax", "Total"]]
    for it in invoice.items:
        data.append([
            Paragraph(escape(it.description), normal),
            _qty(it.quantity),
            _money(it.unit_price),
            _qty(it.tax_rate),
            _money(it.net_amount),
            _money(it.tax_amount),
            _money(it.line_total),
        ])
    lines = Table(
        data,
        colWidths=[64 * mm, 14 * mm, 22 * mm, 14 * mm, 22 * mm, 20 * mm, 22 * mm],
        repeatRows=1,
    )
    lines.setStyle(grid)
    story.append(lines)
    story.append(Spacer(1, 8))

    breakdown = [["Tax", "Base", "Amount"]]
    for label, row in sorted((invoice.tax_breakdown or {}).items()):
        breakdown.append([label, _money(row.get("base")), _money(row.get("tax"))])
    tax_table = Table(breakdown, colWidths=[40 * mm, 30 * mm, 30 * mm])
    tax_table.setStyle(grid)
    story.append(tax_table)
    story.append(Spacer(1, 8))

    totals = Table(
        [
            ["Subtotal", _money(invoice.subtotal)],
            ["Tax", _money(invoice.tax_amount)],
            ["Total", _money(invoice.total)],
            ["Paid", _money(paid)],
            ["Balance due", _money(balance)],
        ],
        colWidths=[40 * mm, 30 * mm],
        hAlign="RIGHT",
    )
    totals.setStyle(
        TableStyle([
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (1, 0), (1, -1), "RIGHT"),
            ("FONTNAME", (0, 2), (-1, 2), "Helvetica-Bold"),
            ("LINEABOVE", (0, 2), (-1, 2), 0.5, colors.HexColor("#0f172a")),
        ]))
    story.append(totals)

    if invoice.client_notes:
        story.append(Spacer(1, 8))
        story.append(Paragraph(f"<b>Notes:</b> {escape(invoice.client_notes)}", normal))

    story.append(Spacer(1, 10))
    now = datetime.now().strftime("%d/%m/%Y %H:%M")
    story.append(Paragraph(f"Generated: {now}", small))

    doc.build(story)
    return buf.getvalue()
