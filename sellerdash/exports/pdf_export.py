"""PDF reports (account health, documents needed) built with reportlab."""
import io
from datetime import datetime
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from sellerdash.schemas import Violation
from sellerdash.services.report import (
    DOCUMENT_REQUIREMENTS,
    date_range_label,
    format_currency,
    format_date,
    summarize,
    truncate,
    violations_with_docs,
)

BRAND_ORANGE = "#E67E22"
SLATE_NAVY = colors.HexColor("#1E293B")
COOL_GRAY = colors.HexColor("#64748B")
LIGHT_GRAY = colors.HexColor("#F1F5F9")


def _footer(store_name: str):
    def draw(canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(COOL_GRAY)
        canvas.drawString(doc.leftMargin, 0.5 * inch, f"Confidential - Prepared for {store_name}")
        canvas.drawCentredString(letter[0] / 2, 0.5 * inch, f"Page {doc.page}")
        canvas.restoreState()

    return draw


def _build(story: list, store_name: str) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.9 * inch,
        title=f"{store_name} report",
    )
    footer = _footer(store_name)
    doc.build(story, onFirstPage=footer, onLaterPages=footer)
    return buf.getvalue()


def violations_report_pdf(
    store_name: str,
    merchant_id: str,
    violations: list[Violation],
    tab: str,
    time_filter: str,
    search: str,
    now: datetime,
) -> bytes:
    styles = getSampleStyleSheet()
    story = [
        Paragraph(f'<font color="{BRAND_ORANGE}">SELLER DASHBOARD</font>', styles["Heading3"]),
        Paragraph("Account Health Report", styles["Title"]),
        Paragraph(escape(store_name), styles["Heading2"]),
    ]
    if merchant_id:
        story.append(Paragraph(f"Merchant ID: {escape(merchant_id)}", styles["Normal"]))
    period = date_range_label(time_filter, now)
    story.append(Paragraph(f"Report period: {period} &nbsp; Generated: {now:%m/%d/%Y}", styles["Normal"]))
    if search:
        story.append(Paragraph(f"Filtered by: &quot;{escape(search)}&quot;", styles["Normal"]))
    story.append(Spacer(1, 12))

    metrics = summarize(violations, tab, now)
    metric_table = Table(
        [[m.value for m in metrics], [m.label for m in metrics], [m.sub_label for m in metrics]],
        colWidths=[1.75 * inch] * len(metrics),
    )
    metric_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), LIGHT_GRAY),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 16),
        ("TEXTCOLOR", (0, 0), (-1, 0), SLATE_NAVY),
        ("TEXTCOLOR", (0, 2), (-1, 2), COOL_GRAY),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
    ]))
    story += [metric_table, Spacer(1, 16)]

    if not violations:
        story.append(Paragraph("No violations match the selected filters.", styles["Normal"]))
        return _build(story, store_name)

    rows = [["Date", "ASIN", "Issue", "Impact", "Status", "At Risk"]]
    for v in violations:
        rows.append([
            format_date(v.date),
            v.asin or "-",
            truncate(v.reason, 40),
            v.ahr_impact,
            v.status.value,
            format_currency(v.at_risk_sales),
        ])
    table = Table(rows, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), SLATE_NAVY),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, LIGHT_GRAY]),
        ("ALIGN", (-1, 1), (-1, -1), "RIGHT"),
    ]))
    story.append(table)
    return _build(story, store_name)


def documents_needed_pdf(
    store_name: str,
    document_folder_url: Optional[str],
    violations: list[Violation],
    now: datetime,
) -> bytes:
    styles = getSampleStyleSheet()
    pending = violations_with_docs(violations)
    story = [
        Paragraph("Documents Needed", styles["Title"]),
        Paragraph(escape(store_name), styles["Heading2"]),
        Paragraph(f"Generated: {now:%m/%d/%Y}", styles["Normal"]),
    ]
    if document_folder_url:
        url = escape(document_folder_url)
        story.append(Paragraph(f'Upload documents to: <link href="{url}">{url}</link>', styles["Normal"]))
    story.append(Spacer(1, 12))

    if not pending:
        story.append(Paragraph("No documents are currently needed.", styles["Normal"]))
        return _build(story, store_name)

    for v in pending:
        story.append(Paragraph(
            f"{escape(v.asin or '-')} - {escape(truncate(v.product_title, 70))}", styles["Heading4"]
        ))
        story.append(Paragraph(
            f"Issue: {escape(v.reason or '-')} &nbsp; Date: {format_date(v.date)}", styles["Normal"]
        ))
        for doc_name in v.docs_needed or []:
            title, requirements = DOCUMENT_REQUIREMENTS.get(doc_name, (doc_name, []))
            story.append(Paragraph(f"<b>{escape(title)}</b>", styles["Normal"]))
            for req in requirements:
                story.append(Paragraph(f"&#8226; {escape(req)}", styles["Normal"]))
        story.append(Spacer(1, 10))
    return _build(story, store_name)
