"""
pdf_report.py - PDF Report Rendering
Lays out an already-computed prediction as a downloadable diagnostic report
"""

import io
import re
import uuid
from datetime import datetime
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from report import TECHNICAL_FIELDS

REPORT_TITLE = "PulmoAI Diagnostic Report"

_EMOJI = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF\uFE0F\u200D]")

TECHNICAL_LABELS = {
    "noduleSize": "Nodule Size",
    "location": "Location",
    "shape": "Shape",
    "density": "Density",
}


def strip_emoji(text: str) -> str:
    return _EMOJI.sub("", text).strip()


def _table(rows, header_color, striped=False):
    table = Table(rows, hAlign="LEFT", colWidths=[60 * mm, 110 * mm] if len(rows[0]) == 2 else [170 * mm])
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), header_color),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]
    if striped:
        style.append(("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f2f2f2")]))
    else:
        style.append(("GRID", (0, 0), (-1, -1), 0.5, colors.grey))
    table.setStyle(TableStyle(style))
    return table


def render_pdf(prediction: dict) -> bytes:
    """
    Render a prediction dictionary (as returned by /api/predict) to PDF bytes

    Args:
        prediction: Report with result, confidence, riskLevel, description,
            technicalDetails, recommendations, imageQuality, analysisEngine

    Returns:
        PDF document as bytes
    """
    styles = getSampleStyleSheet()
    body = styles["BodyText"]
    details = prediction.get("technicalDetails")
    if not isinstance(details, dict):
        details = {}

    generated = prediction.get("timestamp") or datetime.now().isoformat()
    report_id = uuid.uuid4().hex[:8].upper()

    story = [
        Paragraph(REPORT_TITLE, styles["Title"]),
        Paragraph(f"Generated on: {escape(str(generated))}", body),
        Paragraph(f"Report ID: {report_id}", body),
        Spacer(1, 6 * mm),
        Paragraph("Clinical Diagnosis", styles["Heading2"]),
        Paragraph(f"Result: {escape(str(prediction.get('result', 'N/A')))}", body),
        Paragraph(f"Confidence Level: {prediction.get('confidence', 'N/A')}%", body),
        Paragraph(f"Risk Level: {escape(str(prediction.get('riskLevel', 'N/A')).upper())}", body),
        Paragraph(f"Description: {escape(str(prediction.get('description', '')))}", body),
        Spacer(1, 6 * mm),
        Paragraph("Technical Details", styles["Heading2"]),
    ]

    rows = [["Parameter", "Value"]]
    rows += [[TECHNICAL_LABELS[field], str(details.get(field, "N/A"))] for field in TECHNICAL_FIELDS]
    rows.append(["Image Quality", str(prediction.get("imageQuality") or "N/A")])
    rows.append(["Analysis Engine", str(prediction.get("analysisEngine") or "Vision AI")])
    story.append(_table(rows, colors.HexColor("#667eea")))

    story += [Spacer(1, 6 * mm), Paragraph("Rx / Clinical Recommendations", styles["Heading2"])]
    recommendations = [[Paragraph(escape(strip_emoji(str(r))), body)] for r in prediction.get("recommendations") or []]
    if not recommendations:
        recommendations = [["No recommendations provided"]]
    story.append(_table([["Recommended Action Plan"]] + recommendations, colors.HexColor("#2c3e50"), striped=True))

    story += [
        Spacer(1, 20 * mm),
        Paragraph("_" * 30, body),
        Paragraph("Authorized Digital Signature", body),
    ]

    buf = io.BytesIO()
    SimpleDocTemplate(buf, pagesize=A4, title=REPORT_TITLE).build(story)
    return buf.getvalue()
