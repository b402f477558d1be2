"""
Invoice PDF.

The page is laid out as a list of draw commands with absolute positions in
millimetres, measured from the top-left corner of an A4 page. Layout does not
touch reportlab; ``render_commands`` replays the commands onto a canvas.
"""
import io
import logging
import os
from collections import namedtuple
from datetime import date

import requests
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

PAGE_HEIGHT_MM = 297

FONT = 'Helvetica'
BOLD_FONT = 'Helvetica-Bold'

_WIN_FONTS = os.path.join(os.environ.get('WINDIR', 'C:\\Windows'), 'Fonts')

# (regular, bold) TTF pairs tried in order; the first pair found is used
FONT_CANDIDATES = (
    (os.path.join(_WIN_FONTS, 'arial.ttf'), os.path.join(_WIN_FONTS, 'arialbd.ttf')),
    ('/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf', '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf'),
    ('/usr/share/fonts/dejavu/DejaVuSans.ttf', '/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf'),
    ('/Library/Fonts/Arial Unicode.ttf', '/Library/Fonts/Arial Bold.ttf'),
)

BLACK = (0, 0, 0)
GREY = (100, 100, 100)
BRAND_COLOR = (138, 92, 246)
RULE_COLOR = (200, 200, 200)
HEADER_FILL = (248, 249, 250)

ROW_HEIGHT = 10

Text = namedtuple('Text', ['x', 'y', 'text', 'size', 'color', 'bold'])
Line = namedtuple('Line', ['x1', 'y1', 'x2', 'y2', 'width', 'color'])
Rect = namedtuple('Rect', ['x', 'y', 'width', 'height', 'fill'])
Image = namedtuple('Image', ['x', 'y', 'width', 'height', 'image'])


def money(amount, symbol='$'):
    amount = float(amount or 0)
    if amount < 0:
        return f"-{symbol}{-amount:,.2f}"
    return f"{symbol}{amount:,.2f}"


def _display_date(value):
    if not value:
        return ''
    if not isinstance(value, date):
        value = date.fromisoformat(str(value)[:10])
    return f"{value.month}/{value.day}/{value.year}"


def pdf_filename(invoice):
    return f"Invoice-{invoice['invoice_no']}.pdf"


def load_brand_image(source, timeout=5):
    """
    Fetch the brand logo from a URL or read it from a path.

    Returns an ImageReader, or None when there is no logo or it can't be
    loaded. Failures are logged and never raised.
    """
    if not source:
        return None
    try:
        if source.startswith(('http://', 'https://')):
            resp = requests.get(source, timeout=timeout)
            resp.raise_for_status()
            data = resp.content
        else:
            with open(source, 'rb') as f:
                data = f.read()
    except (requests.RequestException, OSError) as e:
        logger.warning("Brand image %s skipped: %s", source, e)
        return None

    try:
        image = ImageReader(io.BytesIO(data))
        image.getSize()
    except Exception as e:
        logger.warning("Brand image %s is not a readable image: %s", source, e)
        return None
    return image


def build_layout(invoice, brand_name, brand_image=None, currency_symbol='$'):
    """Return the draw commands for one invoice page."""
    commands = []

    def text(x, y, value, size=12, color=BLACK, bold=False):
        commands.append(Text(x, y, str(value), size, color, bold))

    # Header
    if brand_image is not None:
        commands.append(Image(20, 18, 24, 24, brand_image))
    text(50, 30, brand_name, size=24, color=BRAND_COLOR)
    text(140, 30, 'INVOICE', size=28)

    text(140, 45, f"Invoice #: {invoice['invoice_no']}")
    text(140, 55, f"Date: {_display_date(invoice.get('date'))}")
    text(140, 65, f"Due Date: {_display_date(invoice.get('due_date'))}")

    # Bill To
    text(20, 80, 'Bill To:', size=14)
    client = invoice.get('clients') or {}
    y = 90
    for value in (client.get('name'), client.get('company'), client.get('email'), client.get('phone')):
        if value:
            text(20, y, value)
            y += ROW_HEIGHT

    commands.append(Line(20, 140, 190, 140, 0.5, RULE_COLOR))

    # Items table
    commands.append(Rect(20, 150, 170, 10, HEADER_FILL))
    text(25, 157, 'Description')
    text(120, 157, 'Qty')
    text(140, 157, 'Price')
    text(165, 157, 'Total')

    y = 170
    for item in invoice.get('invoice_items') or []:
        text(25, y, item.get('description') or '')
        text(125, y, item.get('quantity'))
        text(145, y, money(item.get('price'), currency_symbol))
        text(170, y, money(item.get('total'), currency_symbol))
        y += ROW_HEIGHT

    # Totals
    y += 10
    commands.append(Line(120, y, 190, y, 0.5, RULE_COLOR))
    y += 15
    text(140, y, 'Subtotal:')
    text(170, y, money(invoice.get('subtotal'), currency_symbol))
    y += ROW_HEIGHT
    text(140, y, f"Tax ({float(invoice.get('tax_rate') or 0):g}%):")
    text(170, y, money(invoice.get('tax_amount'), currency_symbol))
    y += ROW_HEIGHT
    text(140, y, 'Total:', size=14, bold=True)
    text(170, y, money(invoice.get('total'), currency_symbol), size=14, bold=True)

    # Fixed footer band unless the totals run into it
    footer_y = 250 if y + ROW_HEIGHT <= 250 else y + 20
    text(20, footer_y, 'Thank you for your business!', size=10, color=GREY)
    text(20, footer_y + 10, 'Payment terms: Net 30 days', size=10, color=GREY)

    return commands


def _rgb(color):
    return tuple(c / 255 for c in color)


def register_fonts(candidates=None):
    """
    Register the first Unicode TTF pair found on this machine.

    Returns the ``(regular, bold)`` font names, or the built-in Helvetica
    pair when none of the candidates can be loaded.
    """
    if candidates is None:
        candidates = FONT_CANDIDATES
    for regular, bold in candidates:
        if not (os.path.exists(regular) and os.path.exists(bold)):
            continue
        name = os.path.splitext(os.path.basename(regular))[0].replace(' ', '')
        try:
            pdfmetrics.registerFont(TTFont(name, regular))
            pdfmetrics.registerFont(TTFont(f"{name}-Bold", bold))
        except (TTFError, OSError) as e:
            logger.warning("Font %s skipped: %s", regular, e)
            continue
        return name, f"{name}-Bold"
    return FONT, BOLD_FONT


def render_commands(commands, target, title=None, fonts=(FONT, BOLD_FONT)):
    """Write the commands as a single A4 page to ``target`` (path or file object)."""
    font, bold_font = fonts
    pdf = canvas.Canvas(target, pagesize=A4)
    if title:
        pdf.setTitle(title)

    def y_pt(y):
        return (PAGE_HEIGHT_MM - y) * mm

    for cmd in commands:
        if isinstance(cmd, Text):
            pdf.setFont(bold_font if cmd.bold else font, cmd.size)
            pdf.setFillColorRGB(*_rgb(cmd.color))
            pdf.drawString(cmd.x * mm, y_pt(cmd.y), cmd.text)
        elif isinstance(cmd, Line):
            pdf.setLineWidth(cmd.width * mm)
            pdf.setStrokeColorRGB(*_rgb(cmd.color))
            pdf.line(cmd.x1 * mm, y_pt(cmd.y1), cmd.x2 * mm, y_pt(cmd.y2))
        elif isinstance(cmd, Rect):
            pdf.setFillColorRGB(*_rgb(cmd.fill))
            pdf.rect(cmd.x * mm, y_pt(cmd.y + cmd.height), cmd.width * mm, cmd.height * mm,
                     stroke=0, fill=1)
        elif isinstance(cmd, Image):
            pdf.drawImage(cmd.image, cmd.x * mm, y_pt(cmd.y + cmd.height),
                          width=cmd.width * mm, height=cmd.height * mm, mask='auto')

    pdf.showPage()
    pdf.save()


class InvoicePDF:
    def __init__(self, invoice_data, brand_name='YourCompany', brand_logo=None, currency_symbol='$'):
        self.invoice_data = invoice_data
        self.brand_name = brand_name
        self.brand_logo = brand_logo
        self.currency_symbol = currency_symbol

    def layout(self):
        brand_image = load_brand_image(self.brand_logo)
        return build_layout(self.invoice_data, self.brand_name, brand_image, self.currency_symbol)

    def generate(self, target):
        render_commands(self.layout(), target, title=f"Invoice {self.invoice_data['invoice_no']}",
                        fonts=register_fonts())


def generate_invoice_pdf(invoice, brand_name='YourCompany', brand_logo=None, currency_symbol='$'):
    """Render the invoice and return the PDF bytes."""
    buffer = io.BytesIO()
    InvoicePDF(invoice, brand_name, brand_logo, currency_symbol).generate(buffer)
    return buffer.getvalue()
