"""Scannable credential and printable ticket rendering."""

import io

import qrcode
from PIL import Image, ImageDraw, ImageFont

from tikoyangu.schemas.ticket import TicketConfirmation

# A4 landscape at 2x the 72dpi point grid
PAGE_SIZE = (1684, 1190)
PDF_RESOLUTION = 144.0
MARGIN = 80

PRIMARY = "#2563eb"
TEXT_DARK = "#111827"
TEXT_GRAY = "#6b7280"
BORDER = "#e5e7eb"
HEADER_FILL = "#f0f9ff"


def _font(size: int):
    return ImageFont.load_default(size=size)


def _centered(draw, center_x, y, text, font, fill=TEXT_GRAY):
    draw.text((center_x - draw.textlength(text, font=font) / 2, y), text, fill=fill, font=font)


def qr_png(credential: str, box_size: int = 10, border: int = 1) -> bytes:
    qr = qrcode.QRCode(box_size=box_size, border=border)
    qr.add_data(credential)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue()


class TicketDocumentRenderer:

    def __init__(self, brand_name: str = "Tikoyangu", currency: str = "KES"):
        self.brand_name = brand_name
        self.currency = currency

    def render_pdf(self, ticket: TicketConfirmation) -> bytes:
        page = Image.new("RGB", PAGE_SIZE, "white")
        draw = ImageDraw.Draw(page)
        width, height = PAGE_SIZE
        content_width = width - MARGIN * 2

        draw.rectangle([MARGIN, MARGIN, width - MARGIN, height - MARGIN], outline=BORDER, width=4)
        draw.rectangle([MARGIN, MARGIN, width - MARGIN, MARGIN + 160], fill=HEADER_FILL)

        draw.text((MARGIN + 60, MARGIN + 30), self.brand_name, fill=PRIMARY, font=_font(64))
        draw.text((MARGIN + 60, MARGIN + 112), "Event Ticket", fill=TEXT_GRAY, font=_font(24))
        ticket_label = f"Ticket #{ticket.ticket_id}"
        ticket_font = _font(28)
        draw.text(
            (width - MARGIN - 60 - draw.textlength(ticket_label, font=ticket_font), MARGIN + 70),
            ticket_label,
            fill=TEXT_DARK,
            font=ticket_font,
        )

        left_x = MARGIN + 60
        content_y = MARGIN + 200
        draw.text((left_x, content_y), ticket.event_title, fill=TEXT_DARK, font=_font(48))

        rows = [
            ("Venue:", self._venue(ticket)),
            ("Date:", ticket.event_start_date.strftime("%A, %d %B %Y") if ticket.event_start_date else "TBA"),
            ("Time:", self._time_range(ticket)),
            ("Type:", ticket.ticket_type),
            ("Price:", f"{self.currency} {ticket.price:,.2f}"),
            ("Attendee:", ticket.buyer_name),
        ]
        label_font = _font(24)
        row_y = content_y + 120
        for label, value in rows:
            draw.text((left_x, row_y), label, fill=TEXT_GRAY, font=label_font)
            draw.text((left_x + 180, row_y), value, fill=TEXT_DARK, font=label_font)
            row_y += 56

        qr_size = 360
        qr_x = width - MARGIN - qr_size - 80
        qr_y = content_y + 80
        draw.rectangle([qr_x - 30, qr_y - 30, qr_x + qr_size + 30, qr_y + qr_size + 70], fill="white", outline=BORDER, width=2)
        qr_img = Image.open(io.BytesIO(qr_png(ticket.credential))).convert("RGB").resize((qr_size, qr_size))
        page.paste(qr_img, (qr_x, qr_y))
        _centered(draw, qr_x + qr_size // 2, qr_y + qr_size + 20, "Scan to verify", _font(20))

        footer_y = height - MARGIN - 80
        draw.line([MARGIN + 60, footer_y, width - MARGIN - 60, footer_y], fill=BORDER, width=2)
        _centered(
            draw,
            MARGIN + content_width // 2,
            footer_y + 24,
            "Please present this ticket at the venue entrance. Keep it safe and do not share.",
            _font(18),
        )

        buf = io.BytesIO()
        page.save(buf, format="PDF", resolution=PDF_RESOLUTION)
        return buf.getvalue()

    @staticmethod
    def _venue(ticket: TicketConfirmation) -> str:
        parts = [p for p in (ticket.event_venue, ticket.event_location) if p]
        return ", ".join(parts) or "TBA"

    @staticmethod
    def _time_range(ticket: TicketConfirmation) -> str:
        if not ticket.event_start_time:
            return "TBA"
        start = ticket.event_start_time.strftime("%H:%M")
        if ticket.event_end_time:
            return f"{start} - {ticket.event_end_time.strftime('%H:%M')}"
        return start

    @staticmethod
    def filename(ticket: TicketConfirmation) -> str:
        return f"ticket-{ticket.ticket_id}.pdf"
