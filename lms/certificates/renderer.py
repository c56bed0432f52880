# lms/certificates/renderer.py
from PIL import Image, ImageDraw, ImageFont
from datetime import datetime
from io import BytesIO
import qrcode

# A4 landscape at 150 dpi
PAGE_SIZE = (1754, 1240)
PRIMARY = (21, 67, 140)
ACCENT = (120, 160, 220)
GREY = (128, 128, 128)

def _font(size: int):
    return ImageFont.load_default(size=size)

def _centered(draw: ImageDraw.ImageDraw, y: int, text: str, font, fill=(0, 0, 0)):
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (PAGE_SIZE[0] - (right - left)) // 2
    draw.text((x, y), text, font=font, fill=fill)

def _qr_image(data: str, size: int) -> Image.Image:
    qr = qrcode.QRCode(version=1, box_size=10, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return img.resize((size, size))

def render_certificate(
    student_name: str,
    course_title: str,
    certificate_code: str,
    completion_date: datetime,
    issued_at: datetime,
    final_grade: float,
    issuer_name: str,
    verification_url: str
) -> bytes:
    """Draw the certificate page and return it as PDF bytes"""
    page = Image.new("RGB", PAGE_SIZE, "white")
    draw = ImageDraw.Draw(page)

    # Border
    draw.rectangle([40, 40, PAGE_SIZE[0] - 40, PAGE_SIZE[1] - 40], outline=PRIMARY, width=8)
    draw.rectangle([60, 60, PAGE_SIZE[0] - 60, PAGE_SIZE[1] - 60], outline=ACCENT, width=2)

    _centered(draw, 150, "CERTIFICATE OF COMPLETION", _font(72), PRIMARY)
    draw.line([(PAGE_SIZE[0] // 2 - 300, 260), (PAGE_SIZE[0] // 2 + 300, 260)], fill=ACCENT, width=4)

    _centered(draw, 330, "This is to certify that", _font(36))
    _centered(draw, 410, student_name, _font(64), PRIMARY)
    _centered(draw, 530, "has successfully completed the course", _font(36))
    _centered(draw, 610, course_title, _font(52), PRIMARY)

    details = _font(32)
    draw.text((300, 780), "Completion Date", font=details, fill=GREY)
    draw.text((300, 825), completion_date.strftime("%B %d, %Y"), font=details, fill=(0, 0, 0))
    draw.text((1100, 780), "Final Grade", font=details, fill=GREY)
    draw.text((1100, 825), f"{final_grade:.1f}%", font=details, fill=(0, 0, 0))

    # Signature lines
    draw.line([(250, 1000), (650, 1000)], fill=GREY, width=2)
    draw.text((250, 1015), issuer_name, font=details, fill=(0, 0, 0))
    draw.line([(1000, 1000), (1400, 1000)], fill=GREY, width=2)
    draw.text((1000, 1015), f"Issued {issued_at.strftime('%B %d, %Y')}", font=details, fill=(0, 0, 0))

    # Verification mark
    qr = _qr_image(verification_url, 180)
    page.paste(qr, (PAGE_SIZE[0] - 280, PAGE_SIZE[1] - 300))
    draw.text((100, PAGE_SIZE[1] - 110), f"Certificate ID: {certificate_code}", font=_font(24), fill=GREY)

    buffer = BytesIO()
    page.save(buffer, format="PDF", resolution=150.0)
    return buffer.getvalue()
