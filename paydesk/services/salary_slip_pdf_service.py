"""
PayDesk - Salary Slip PDF Service

Renders a salary slip to a fixed-layout A4 PDF with ReportLab.

Sections: header, employee information, pay period, earnings, deductions,
net salary with amount in words, bank details (when known), notes, footer.
"""

import io
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)

from paydesk.services.salary_calculator import SalaryBreakdown
from paydesk.utils.formatting import format_currency, month_name, number_to_words

logger = logging.getLogger(__name__)

# Built-in PDF fonts have no rupee glyph
PDF_CURRENCY_SYMBOL = "Rs. "
BRAND_COLOUR = colors.HexColor("#1e3a8a")


@dataclass
class SalarySlipDocument:
    """Everything printed on a salary slip."""
    employee_name: str
    employee_code: Optional[str]
    employee_email: str
    department: Optional[str]
    position: Optional[str]
    month: int
    year: int
    breakdown: SalaryBreakdown
    generated_by_name: str
    bank_account_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    notes: Optional[str] = None
    generated_at: Optional[datetime] = None

    @property
    def period_label(self) -> str:
        return f"{month_name(self.month)} {self.year}"


def salary_slip_filename(employee_code: Optional[str], month: int, year: int) -> str:
    """Download name, e.g. SalarySlip_EMP0001_March_2024.pdf."""
    return f"SalarySlip_{employee_code or 'NA'}_{month_name(month)}_{year}.pdf"


def _money(amount: Decimal) -> str:
    return format_currency(amount, symbol=PDF_CURRENCY_SYMBOL)


class SalarySlipPDFService:
    """Builds salary slip PDFs."""

    def __init__(self, organisation_name: str = "PAYROLL MANAGEMENT SYSTEM"):
        self.organisation_name = organisation_name

        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "SlipTitle",
            parent=styles["Heading1"],
            fontSize=20,
            alignment=TA_CENTER,
            textColor=BRAND_COLOUR,
            spaceAfter=4,
        )
        self.subtitle_style = ParagraphStyle(
            "SlipSubtitle",
            parent=styles["Heading2"],
            fontSize=14,
            alignment=TA_CENTER,
            spaceAfter=8,
        )
        self.heading_style = ParagraphStyle(
            "SlipHeading",
            parent=styles["Heading3"],
            fontSize=12,
            textColor=BRAND_COLOUR,
            spaceBefore=10,
            spaceAfter=4,
        )
        self.normal_style = ParagraphStyle(
            "SlipNormal",
            parent=styles["Normal"],
            fontSize=10,
            spaceAfter=2,
        )
        self.footer_style = ParagraphStyle(
            "SlipFooter",
            parent=styles["Normal"],
            fontSize=8,
            textColor=colors.grey,
        )

    def generate_pdf(self, slip: SalarySlipDocument) -> bytes:
        """
        Render a salary slip.

        Returns:
            PDF bytes
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=18 * mm,
            leftMargin=18 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=f"Salary Slip {slip.period_label}",
            author=self.organisation_name,
        )

        elements = []
        elements.append(Paragraph(escape(self.organisation_name), self.title_style))
        elements.append(Paragraph("Salary Slip", self.subtitle_style))
        elements.append(HRFlowable(width="100%", thickness=1, color=BRAND_COLOUR))
        elements.append(Spacer(1, 8))

        elements.append(self._build_info_section(slip))
        elements.append(Spacer(1, 8))

        elements.append(Paragraph("Earnings", self.heading_style))
        elements.append(self._build_earnings_table(slip.breakdown))

        elements.append(Paragraph("Deductions", self.heading_style))
        elements.append(self._build_deductions_table(slip.breakdown))
        elements.append(Spacer(1, 10))

        elements.append(self._build_net_section(slip.breakdown))
        elements.append(Spacer(1, 6))
        elements.append(Paragraph(
            f"<b>Amount in Words:</b> {escape(number_to_words(slip.breakdown.net))}",
            self.normal_style,
        ))

        if slip.bank_account_number:
            elements.append(Paragraph("Bank Details", self.heading_style))
            elements.append(Paragraph(
                f"Account Number: {escape(slip.bank_account_number)}<br/>"
                f"Bank Name: {escape(slip.bank_name or 'N/A')}<br/>"
                f"IFSC Code: {escape(slip.bank_ifsc_code or 'N/A')}",
                self.normal_style,
            ))

        if slip.notes:
            elements.append(Paragraph("Notes", self.heading_style))
            elements.append(Paragraph(escape(slip.notes), self.normal_style))

        elements.append(Spacer(1, 24))
        elements.append(self._build_footer(slip))

        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"Rendered salary slip PDF for {slip.employee_code} {slip.period_label} ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _build_info_section(self, slip: SalarySlipDocument) -> Table:
        """Employee details on the left, pay period on the right."""
        employee_info = (
            "<b>Employee Information</b><br/>"
            f"Name: {escape(slip.employee_name)}<br/>"
            f"Employee ID: {escape(slip.employee_code or 'N/A')}<br/>"
            f"Department: {escape(slip.department or 'N/A')}<br/>"
            f"Position: {escape(slip.position or 'N/A')}<br/>"
            f"Email: {escape(slip.employee_email)}"
        )
        period_info = (
            "<b>Pay Period</b><br/>"
            f"Month: {month_name(slip.month)}<br/>"
            f"Year: {slip.year}<br/>"
            f"Working Days: {slip.breakdown.working_days_worked}/{slip.breakdown.working_days_total}"
        )
        table = Table(
            [[Paragraph(employee_info, self.normal_style), Paragraph(period_info, self.normal_style)]],
            colWidths=[100 * mm, 74 * mm],
        )
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOX", (0, 0), (-1, -1), 0.5, colors.lightgrey),
            ("LEFTPADDING", (0, 0), (-1, -1), 8),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        return table

    def _line_table(self, rows, total_label: str, total_value: Decimal, extra_rows=()) -> Table:
        data = [["Component", "Amount"]]
        data += [[label, _money(value)] for label, value in rows]
        data += [[label, _money(value)] for label, value in extra_rows]
        data.append([total_label, _money(total_value)])

        table = Table(data, colWidths=[120 * mm, 54 * mm])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOUR),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ALIGN", (1, 0), (1, -1), "RIGHT"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
            ("TOPPADDING", (0, 0), (-1, -1), 5),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ]))
        return table

    def _build_earnings_table(self, breakdown: SalaryBreakdown) -> Table:
        rows = [("Basic Salary (Pro-rated)", breakdown.pro_rated_basic)]
        rows += [
            (name.upper(), amount)
            for name, amount in breakdown.allowances.items()
            if amount > 0
        ]
        return self._line_table(
            rows,
            "Gross Salary",
            breakdown.gross,
            extra_rows=[("Total Allowances", breakdown.total_allowances)],
        )

    def _build_deductions_table(self, breakdown: SalaryBreakdown) -> Table:
        rows = [
            (name.upper(), amount)
            for name, amount in breakdown.deductions.items()
            if amount > 0
        ]
        return self._line_table(rows, "Total Deductions", breakdown.total_deductions)

    def _build_net_section(self, breakdown: SalaryBreakdown) -> Table:
        table = Table([["NET SALARY", _money(breakdown.net)]], colWidths=[120 * mm, 54 * mm])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#dbeafe")),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 12),
            ("ALIGN", (1, 0), (1, 0), "RIGHT"),
            ("BOX", (0, 0), (-1, -1), 1, BRAND_COLOUR),
            ("TOPPADDING", (0, 0), (-1, -1), 8),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ]))
        return table

    def _build_footer(self, slip: SalarySlipDocument) -> Table:
        generated_at = (slip.generated_at or datetime.utcnow()).strftime("%d %B %Y, %H:%M UTC")
        table = Table(
            [
                [
                    Paragraph(f"Generated on: {generated_at}", self.footer_style),
                    Paragraph(f"Generated by: {escape(slip.generated_by_name)}", self.footer_style),
                ],
                [
                    Paragraph(
                        "This is a computer generated salary slip and does not require signature.",
                        self.footer_style,
                    ),
                    "",
                ],
            ],
            colWidths=[100 * mm, 74 * mm],
        )
        table.setStyle(TableStyle([("SPAN", (0, 1), (1, 1))]))
        return table
