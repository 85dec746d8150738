"""
Membership application PDF.

Renders one form_responses row onto a single A4 page with PyMuPDF: header,
declaration, applicant fields, signature image and the office-use block.
"""

import base64
import binascii
import logging
import math
import re
from typing import Dict, Optional

import fitz  # PyMuPDF
import requests

from membership.config import get_settings
from membership.mapping import SIGNATURE_DATA_URL, is_signature_reference, parse_date, signature_embed_url

logger = logging.getLogger(__name__)

ASSOCIATION_NAME = "Government Nursing Officers' Association"

DECLARATION = (
    "I hereby apply to be recruited as a member of the Government Nursing Officers' "
    "Association. I agree to act in accordance with and in loyalty to the constitution "
    "of the association, all rules and regulations adopted from time to time and I "
    "express my willingness to deduct the membership fee of the association from my "
    "salary monthly/annually as notified by the association."
)

# (label, column, is_date)
FIELD_ROWS = [
    ("Name in Full:", "name_in_full", False),
    ("E-mail:", "email", False),
    ("Designation:", "designation", False),
    ("Official Address:", "official_address", False),
    ("Personal Address:", "personal_address", False),
    ("Date of Birth:", "dob", True),
    ("First Appointment Date:", "first_appointment_date", True),
    ("Mobile Number (Personal):", "phone_number_personal", False),
    ("Gender:", "gender", False),
    ("Marital Status:", "marital_status", False),
    ("Employment / Salary Number:", "employment_number_salary_number", False),
    ("School of Nursing / University:", "college_of_nursing_university", False),
]

OFFICE_ROWS = ["Membership Number:", "Date:", "Signature:", "President/Secretary:"]

BLANK = "________________"
MARGIN = 30
FONT = "helv"
BOLD = "hebo"
FONT_SIZE = 11
LINE_HEIGHT = 17


def format_value(value, is_date: bool = False) -> str:
    """Dates as YYYY-MM-DD, blanks as N/A."""
    if is_date:
        parsed = parse_date(value)
        if parsed:
            return parsed.isoformat()
    if value is None or str(value).strip() == "":
        return "N/A"
    return str(value).strip()


def load_signature_image(signature: Optional[str]) -> Optional[bytes]:
    """
    Image bytes for a signature stored as a data URL or a Google Drive link.
    Returns None when there is no signature, it points anywhere else, or it cannot be read.
    """
    if not signature:
        return None
    signature = signature.strip()
    match = SIGNATURE_DATA_URL.match(signature)
    if match:
        try:
            return base64.b64decode(match.group("data"), validate=False)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"⚠️ Undecodable signature data URL: {e}")
            return None

    if not is_signature_reference(signature):
        logger.warning("⚠️ Signature link is not an allowed host; not fetching it")
        return None
    url = signature_embed_url(signature)
    try:
        response = requests.get(url, timeout=get_settings().http_timeout_seconds)
        response.raise_for_status()
        return response.content
    except requests.RequestException as e:
        logger.warning(f"⚠️ Could not fetch signature image: {e}")
        return None


def _textbox(
    page: fitz.Page,
    rect: fitz.Rect,
    text: str,
    fontname: str = FONT,
    fontsize: float = FONT_SIZE,
    align: int = fitz.TEXT_ALIGN_LEFT,
) -> float:
    """
    Write text into rect, growing the box downwards until it fits.
    insert_textbox writes nothing and returns the shortfall when the text overflows.

    Returns:
        Bottom edge of the box that was used
    """
    rect = fitz.Rect(rect)
    for _ in range(3):
        spare = page.insert_textbox(rect, text, fontname=fontname, fontsize=fontsize, align=align)
        if spare >= 0:
            return rect.y1
        rect.y1 += -spare + 1
    logger.warning(f"⚠️ Text did not fit on the membership form: {text[:40]!r}")
    return rect.y1


def _text_height(text: str, width: float, fontname: str = FONT, fontsize: float = FONT_SIZE) -> float:
    length = fitz.get_text_length(text, fontname=fontname, fontsize=fontsize)
    # Word wrapping wastes part of each line.
    lines = max(1, math.ceil(length / max(width * 0.9, 1)) + text.count("\n"))
    return lines * fontsize * 1.5 + 2


def _field_row(page: fitz.Page, y: float, label: str, value: str) -> float:
    left = MARGIN + 10
    usable = page.rect.width - 2 * (MARGIN + 10)
    label_w = usable * 0.4
    value_w = usable * 0.6
    height = max(_text_height(label, label_w, BOLD), _text_height(value, value_w))
    bottom = max(
        _textbox(page, fitz.Rect(left, y, left + label_w, y + height), label, fontname=BOLD),
        _textbox(page, fitz.Rect(left + label_w, y, left + label_w + value_w, y + height), value),
    )
    return bottom + 2


def _centered(page: fitz.Page, y: float, text: str, fontname: str, fontsize: float, inset: float = 0) -> float:
    width = page.rect.width
    rect = fitz.Rect(MARGIN + inset, y, width - MARGIN - inset, y + _text_height(text, width, fontname, fontsize))
    return _textbox(page, rect, text, fontname=fontname, fontsize=fontsize, align=fitz.TEXT_ALIGN_CENTER)


def render_membership_form(record: Dict, signature_image: Optional[bytes] = None) -> bytes:
    """
    Render a membership application PDF.

    Args:
        record: form_responses row
        signature_image: pre-loaded image bytes; loaded from record["signature"] when omitted

    Returns:
        PDF file bytes
    """
    doc = fitz.open()
    try:
        page = doc.new_page(width=fitz.paper_rect("a4").width, height=fitz.paper_rect("a4").height)
        width = page.rect.width
        page.draw_rect(fitz.Rect(MARGIN / 2, MARGIN / 2, width - MARGIN / 2, page.rect.height - MARGIN / 2),
                       color=(0, 0, 0), width=2)

        # Header
        y = _centered(page, MARGIN + 10, ASSOCIATION_NAME, BOLD, 14)
        y = _centered(page, y, "Membership Application", FONT, 12) + 6

        # Declaration
        body_w = width - 2 * (MARGIN + 10)
        height = _text_height(DECLARATION, body_w)
        y = _textbox(page, fitz.Rect(MARGIN + 10, y, MARGIN + 10 + body_w, y + height), DECLARATION,
                     align=fitz.TEXT_ALIGN_JUSTIFY) + 8

        for label, column, is_date in FIELD_ROWS:
            y = _field_row(page, y, label, format_value(record.get(column), is_date))

        # Signature
        if signature_image is None:
            signature_image = load_signature_image(record.get("signature"))
        left = MARGIN + 10
        label_w = body_w * 0.4
        _textbox(page, fitz.Rect(left, y, left + label_w, y + LINE_HEIGHT + 2), "Signature:", fontname=BOLD)
        placed = False
        if signature_image:
            try:
                page.insert_image(fitz.Rect(left + label_w, y, left + label_w + 100, y + 40),
                                  stream=signature_image, keep_proportion=True)
                placed = True
            except Exception as e:
                logger.warning(f"⚠️ Signature image could not be embedded: {e}")
        if not placed:
            _textbox(page, fitz.Rect(left + label_w, y, left + body_w, y + LINE_HEIGHT + 2),
                     "______________________")
        y += 46

        # Office use only
        box_top = y + 10
        y = _centered(page, box_top + 8, "Office Use Only", BOLD, 12, inset=10) + 4
        name = record.get("name_in_full") or BLANK
        grant = f"It was decided to grant / deny membership to Mr./Ms. {name} from the date: _____________"
        height = _text_height(grant, body_w - 20)
        y = _textbox(page, fitz.Rect(MARGIN + 20, y, width - MARGIN - 20, y + height), grant) + 4
        for label in OFFICE_ROWS:
            y = _field_row(page, y, label, BLANK)
        page.draw_rect(fitz.Rect(MARGIN + 5, box_top, width - MARGIN - 5, y + 8), color=(0, 0, 0), width=1)

        return doc.tobytes()
    finally:
        doc.close()


def export_filename(record: Dict) -> str:
    name = re.sub(r"[^A-Za-z0-9]+", "_", record.get("name_in_full") or "member").strip("_") or "member"
    return f"membership_form_{name}.pdf"
