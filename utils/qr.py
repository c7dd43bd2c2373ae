import base64
import io

import qrcode

QR_BOX_SIZE = 8
QR_BORDER = 2


def qr_png_bytes(data: str) -> bytes:
    """Encode ``data`` as a PNG QR code."""
    qr = qrcode.QRCode(box_size=QR_BOX_SIZE, border=QR_BORDER)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image()
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
