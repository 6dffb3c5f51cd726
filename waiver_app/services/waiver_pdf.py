"""Signed waiver PDF generation.

Layout is done top-down in millimetres on an A4 page: ``LayoutCursor.y`` is
the distance from the top edge, and the builder converts to reportlab's
bottom-up coordinates only when drawing. All layout state lives on one
``WaiverPdfBuilder`` per document, so concurrent renders never share a cursor.

Only the footer timestamp differs between two renders of the same input;
page count, line breaks and placements are identical.
"""
from __future__ import annotations

import base64
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

from fastapi import Response
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from waiver_app.schemas.waiver import MembershipDetails
from waiver_app.services.guardian import SELF
from waiver_app.services.placeholders import PLACEHOLDER_RE, markup_tag_names
from waiver_app.utils.datetime import ensure_aware_utc, utc_date, utc_now

logger = logging.getLogger("waiver_app.pdf")

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
LINE_RESERVE = 10 * mm
LINE_LIMIT = PAGE_HEIGHT - MARGIN - LINE_RESERVE
SIGNATURE_WIDTH = 80 * mm
SIGNATURE_HEIGHT = 30 * mm
SIGNATURE_BOX_HEIGHT = SIGNATURE_HEIGHT + 4 * mm
SIGNATURE_FALLBACK_TEXT = "Signature on file"

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
RULE_GREY = colors.HexColor("#C8C8C8")
STRIKE_GREY = colors.HexColor("#969696")
FOOTER_GREY = colors.HexColor("#808080")

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_P_CLOSE_RE = re.compile(r"</p\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
_WHITESPACE_RE = re.compile(r"\s+")
# &amp; last so that "&amp;lt;" needs a second pass, which the fixpoint loop gives it
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


@dataclass
class WaiverPdfInput:
    organization_name: str
    waiver_name: str
    waiver_version: int
    rendered_content: str
    member_first_name: str
    member_last_name: str
    member_email: str
    signature_data_url: str
    signed_by_name: str
    signed_at: datetime
    signed_by_relationship: Optional[str] = SELF
    ip_address: Optional[str] = None
    membership: Optional[MembershipDetails] = None


@dataclass(frozen=True)
class Placement:
    page: int
    y: float
    text: str


@dataclass
class RenderedWaiver:
    content: bytes
    filename: str
    page_count: int
    placements: List[Placement] = field(default_factory=list)


@dataclass
class LayoutCursor:
    page: int = 1
    y: float = MARGIN


def _strip_tags(text: str) -> str:
    markup = markup_tag_names(text)

    def _strip(m: re.Match) -> str:
        token = m.group(0)
        placeholder = PLACEHOLDER_RE.fullmatch(token)
        if placeholder and placeholder.group(1) not in markup:
            return token
        return ""

    return _TAG_RE.sub(_strip, text)


def _normalize_once(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BR_RE.sub("\n", text)
    text = _P_CLOSE_RE.sub("\n\n", text)
    text = _strip_tags(text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text.strip()


def normalize_content(text: str) -> str:
    """Convert stored waiver markup to plain text with paragraph breaks.

    Placeholder tokens such as ``<academy_name>`` survive tag stripping.
    Every pass either leaves the text unchanged or shortens it, so the loop
    ends, and ``normalize_content(normalize_content(x)) == normalize_content(x)``.
    """
    current = text or ""
    while True:
        nxt = _normalize_once(current)
        if nxt == current:
            return current
        current = nxt


def split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def pdf_filename(last_name: str, first_name: str, signed_at: datetime) -> str:
    """``waiver_<last>_<first>_<YYYY-MM-DD>.pdf`` using the UTC signing date."""
    name = _WHITESPACE_RE.sub("_", f"{last_name}_{first_name}")
    return f"waiver_{name}_{utc_date(signed_at).isoformat()}.pdf"


def _money(value: float) -> str:
    return f"${value:.2f}"


def _format_signed_at(dt: datetime) -> str:
    dt = ensure_aware_utc(dt)
    return f"{dt:%B} {dt.day}, {dt:%Y} at {dt:%I:%M %p}"


def _decode_data_url(data_url: str) -> bytes:
    header, sep, payload = data_url.partition(",")
    if not sep or ";base64" not in header:
        raise ValueError("Signature is not a base64 data URL")
    return base64.b64decode(payload, validate=True)


class WaiverPdfBuilder:
    """Draws one waiver document. Create a new builder per render."""

    def __init__(self, data: WaiverPdfInput, generated_at: Optional[datetime] = None):
        self.data = data
        self.generated_at = ensure_aware_utc(generated_at) if generated_at else utc_now()
        self.buffer = io.BytesIO()
        self.canvas = canvas.Canvas(self.buffer, pagesize=A4)
        self.canvas.setTitle(f"{data.waiver_name} - {data.member_first_name} {data.member_last_name}")
        self.canvas.setAuthor(data.organization_name)
        self.cursor = LayoutCursor()
        self.placements: List[Placement] = []
        self._font_name = FONT
        self._font_size = 10

    # Drawing primitives

    def _set_font(self, size: float, bold: bool = False) -> None:
        self._font_name = FONT_BOLD if bold else FONT
        self._font_size = size
        self.canvas.setFont(self._font_name, size)

    def _pdf_y(self, y: float) -> float:
        return PAGE_HEIGHT - y

    def _draw(self, text: str, x: float, centered: bool = False) -> None:
        if centered:
            self.canvas.drawCentredString(x, self._pdf_y(self.cursor.y), text)
        else:
            self.canvas.drawString(x, self._pdf_y(self.cursor.y), text)
        self.placements.append(Placement(self.cursor.page, round(self.cursor.y / mm, 3), text))

    def _text_width(self, text: str) -> float:
        return self.canvas.stringWidth(text, self._font_name, self._font_size)

    def _ensure_line_room(self) -> None:
        if self.cursor.y > LINE_LIMIT:
            self.new_page()

    def new_page(self) -> None:
        self._draw_footer()
        self.canvas.showPage()
        self.cursor.page += 1
        self.cursor.y = MARGIN

    def _draw_footer(self) -> None:
        c = self.canvas
        c.saveState()
        c.setFont(FONT, 8)
        c.setFillColor(FOOTER_GREY)
        c.drawCentredString(PAGE_WIDTH / 2, 14 * mm, f"Waiver version: v{self.data.waiver_version}")
        c.drawCentredString(
            PAGE_WIDTH / 2, 10 * mm,
            f"Document generated on {self.generated_at:%Y-%m-%d %H:%M} UTC",
        )
        c.drawRightString(PAGE_WIDTH - MARGIN, 10 * mm, f"Page {self.cursor.page}")
        c.restoreState()

    def write_text(self, text: str, size: float = 10, bold: bool = False) -> None:
        """Wrap ``text`` to the content width, breaking pages line by line."""
        self._set_font(size, bold)
        for line in simpleSplit(text, self._font_name, size, CONTENT_WIDTH):
            self._ensure_line_room()
            self._draw(line, MARGIN)
            self.cursor.y += size * 0.4 * mm
        self.cursor.y += 2 * mm

    def text_height(self, text: str, size: float = 10, bold: bool = False) -> float:
        """Vertical space ``write_text`` uses for ``text``, without drawing it."""
        lines = simpleSplit(text, FONT_BOLD if bold else FONT, size, CONTENT_WIDTH)
        return len(lines) * size * 0.4 * mm + 2 * mm

    def write_centred(self, text: str, size: float) -> None:
        """Bold heading centred on the page, wrapped to the content width."""
        self._set_font(size, bold=True)
        lines = simpleSplit(text, self._font_name, size, CONTENT_WIDTH) or [""]
        for index, line in enumerate(lines):
            if index:
                self.cursor.y += size * 0.4 * mm
            self._draw(line, PAGE_WIDTH / 2, centered=True)

    def gap(self, millimetres: float) -> None:
        self.cursor.y += millimetres * mm

    # Sections

    def header(self) -> None:
        self.write_centred(self.data.organization_name, 18)
        self.gap(10)
        self.write_centred(self.data.waiver_name, 14)
        self.gap(8)
        self.canvas.setStrokeColor(RULE_GREY)
        y = self._pdf_y(self.cursor.y)
        self.canvas.line(MARGIN, y, PAGE_WIDTH - MARGIN, y)
        self.gap(8)

    def member_information(self) -> None:
        d = self.data
        self.write_text("MEMBER INFORMATION", 12, bold=True)
        self.gap(2)
        self.write_text(f"Name: {d.member_first_name} {d.member_last_name}")
        self.write_text(f"Email: {d.member_email}")
        self.gap(5)

    def membership_details(self) -> None:
        m = self.data.membership
        if not m or not m.plan_name:
            return
        self.write_text("MEMBERSHIP DETAILS", 12, bold=True)
        self.gap(2)
        self.write_text(f"Plan: {m.plan_name}")
        if m.is_trial:
            self.write_text("Type: Free Trial")
        if m.price is not None:
            if m.coupon_code and m.coupon_discounted_price is not None and m.price > 0:
                self._discounted_price_line(m)
            else:
                self.write_text(f"Price: {'Free' if m.price == 0 else _money(m.price)}")
        if m.frequency and m.frequency != "None":
            self.write_text(f"Payment Schedule: {m.frequency}")
        if m.contract_length:
            self.write_text(f"Contract Length: {m.contract_length}")
        if m.signup_fee is not None and m.signup_fee > 0:
            self.write_text(f"Signup Fee: {_money(m.signup_fee)}")
        self.gap(5)

    def _discounted_price_line(self, m: MembershipDetails) -> None:
        c = self.canvas
        self._set_font(10)
        self._ensure_line_room()

        label = "Price: "
        original = _money(m.price)
        discounted = "Free" if m.coupon_discounted_price == 0 else _money(m.coupon_discounted_price)
        label_width = self._text_width(label)
        price_x = MARGIN + label_width

        self._draw(label, MARGIN)
        c.setFillColor(STRIKE_GREY)
        self._draw(original, price_x)
        price_width = self._text_width(original)
        strike_y = self._pdf_y(self.cursor.y - 1.2 * mm)
        c.setStrokeColor(STRIKE_GREY)
        c.setLineWidth(0.3 * mm)
        c.line(price_x, strike_y, price_x + price_width, strike_y)

        c.setFillColor(colors.black)
        self._draw(f"  {discounted}", price_x + price_width)
        c.setStrokeColor(RULE_GREY)
        c.setLineWidth(0.2 * mm)
        self.cursor.y += 10 * 0.4 * mm + 2 * mm

        if m.coupon_type == "Free Trial":
            self.write_text(f"Discount: {m.coupon_code} ({m.coupon_amount})")
        else:
            self.write_text(f"Discount: {m.coupon_code} ({m.coupon_amount} off)")

    def waiver_body(self) -> None:
        self.write_text("WAIVER AND RELEASE OF LIABILITY", 12, bold=True)
        self.gap(3)
        for paragraph in split_paragraphs(normalize_content(self.data.rendered_content)):
            self.write_text(paragraph)
            self.gap(3)
        self.gap(5)

    def _signer_lines(self) -> List[tuple]:
        d = self.data
        if d.signed_by_relationship and d.signed_by_relationship != SELF:
            lines = [(f"Signed by: {d.signed_by_name} ({d.signed_by_relationship})", 10)]
        else:
            lines = [(f"Signed by: {d.signed_by_name}", 10)]
        lines.append((f"Date: {_format_signed_at(d.signed_at)}", 10))
        if d.ip_address:
            lines.append((f"IP Address: {d.ip_address}", 9))
        return lines

    def signature(self) -> None:
        """Signature heading, signer lines and box, kept together on one page."""
        lines = self._signer_lines()
        height = (
            self.text_height("SIGNATURE", 12, bold=True) + 3 * mm
            + sum(self.text_height(text, size) for text, size in lines)
            + 5 * mm + SIGNATURE_BOX_HEIGHT
        )
        if self.cursor.y + height > LINE_LIMIT:
            self.new_page()
        self.write_text("SIGNATURE", 12, bold=True)
        self.gap(3)
        for text, size in lines:
            self.write_text(text, size)
        self.gap(5)
        self._signature_box()

    def _signature_box(self) -> None:
        data_url = self.data.signature_data_url or ""
        if not data_url.startswith("data:image/"):
            return
        c = self.canvas
        top = self.cursor.y
        box_height = SIGNATURE_BOX_HEIGHT
        c.setStrokeColor(RULE_GREY)
        c.rect(MARGIN, self._pdf_y(top + box_height), SIGNATURE_WIDTH + 4 * mm, box_height, stroke=1, fill=0)
        try:
            image = ImageReader(io.BytesIO(_decode_data_url(data_url)))
            image.getSize()
            c.drawImage(
                image,
                MARGIN + 2 * mm,
                self._pdf_y(top + 2 * mm + SIGNATURE_HEIGHT),
                width=SIGNATURE_WIDTH,
                height=SIGNATURE_HEIGHT,
                preserveAspectRatio=True,
                mask="auto",
            )
        except Exception as e:
            logger.warning(f"Could not embed signature image, using placeholder text: {e}")
            self._set_font(10)
            self.cursor.y = top + box_height / 2
            self._draw(SIGNATURE_FALLBACK_TEXT, MARGIN + 4 * mm)
        self.cursor.y = top + SIGNATURE_HEIGHT + 10 * mm

    def build(self) -> RenderedWaiver:
        self.header()
        self.member_information()
        self.membership_details()
        self.waiver_body()
        self.signature()
        self._draw_footer()
        self.canvas.showPage()
        self.canvas.save()
        d = self.data
        return RenderedWaiver(
            content=self.buffer.getvalue(),
            filename=pdf_filename(d.member_last_name, d.member_first_name, d.signed_at),
            page_count=self.cursor.page,
            placements=list(self.placements),
        )


def generate_waiver_pdf(data: WaiverPdfInput, generated_at: Optional[datetime] = None) -> RenderedWaiver:
    rendered = WaiverPdfBuilder(data, generated_at).build()
    logger.info(
        f"Generated waiver PDF {rendered.filename} "
        f"({rendered.page_count} page(s), {len(rendered.content)} bytes)"
    )
    return rendered


def waiver_pdf_response(data: WaiverPdfInput, generated_at: Optional[datetime] = None) -> Response:
    """Render and return the PDF as a download."""
    rendered = generate_waiver_pdf(data, generated_at)
    ascii_name = rendered.filename.encode("ascii", "replace").decode("ascii").replace("?", "_").replace('"', "")
    disposition = f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(rendered.filename)}"
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": disposition,
            "X-Page-Count": str(rendered.page_count),
        },
    )


def pdf_input_from_record(
    record,
    organization_name: str,
    waiver_name: str,
    membership: Optional[MembershipDetails] = None,
) -> WaiverPdfInput:
    """Build renderer input from a frozen signed waiver.

    ``waiver_name`` should come from the version snapshot the record was
    signed against; the text is always the record's ``rendered_content``.
    """
    return WaiverPdfInput(
        organization_name=organization_name,
        waiver_name=waiver_name,
        waiver_version=record.template_version_used,
        rendered_content=record.rendered_content,
        member_first_name=record.member_first_name,
        member_last_name=record.member_last_name,
        member_email=record.member_email,
        signature_data_url=record.signature_data_url,
        signed_by_name=record.signed_by_name,
        signed_by_relationship=record.signed_by_relationship,
        signed_at=record.signed_at,
        ip_address=record.ip_address,
        membership=membership,
    )
