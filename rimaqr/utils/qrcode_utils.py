"""QR code du lien invité (affiché dans l'application et imprimé sur les produits)."""
import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_Q

DATA_URI_PREFIX = "data:image/png;base64,"


def qr_png(data: str, box_size: int = 10, border: int = 4) -> bytes:
    # Niveau Q: le code reste lisible sur un support imprimé abîmé
    qr = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_Q, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)
    out = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(out, format="PNG")
    return out.getvalue()


def generate_qr_code(data: str, box_size: int = 10, border: int = 4) -> str:
    """PNG du QR code en data URI ("data:image/png;base64,...")."""
    return DATA_URI_PREFIX + base64.b64encode(qr_png(data, box_size, border)).decode("ascii")
