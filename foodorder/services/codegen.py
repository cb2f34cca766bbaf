"""
Access-code generation for tables and rooms.

The generator is an external collaborator: anything with
`generate(url) -> str`. The default renders a QR code as an SVG data URL.
Every call goes through `generate_bounded` so a hung generator cannot
stall a request.
"""
import base64
import io
import logging
import threading
from typing import Protocol

import qrcode
import qrcode.image.svg

from foodorder.errors import CodeGenerationFailed

logger = logging.getLogger(__name__)


class CodeGenerator(Protocol):
    def generate(self, url: str) -> str: ...


class QRCodeGenerator:
    def __init__(self, box_size: int = 10, border: int = 2):
        self.box_size = box_size
        self.border = border

    def generate(self, url: str) -> str:
        qr = qrcode.QRCode(box_size=self.box_size, border=self.border,
                           image_factory=qrcode.image.svg.SvgPathImage)
        qr.add_data(url)
        qr.make(fit=True)
        buf = io.BytesIO()
        qr.make_image().save(buf)
        return "data:image/svg+xml;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def access_url(base_url: str, kind: str, number: str) -> str:
    return f"{base_url.rstrip('/')}/order?{kind}={number}"


def generate_bounded(generator: CodeGenerator, url: str, timeout: float) -> str:
    """
    Run one generator call on its own daemon thread and wait at most
    `timeout` seconds. A call that hangs is abandoned; it holds no shared
    worker, so later calls are unaffected.
    """
    outcome: dict = {}

    def _run():
        try:
            outcome["blob"] = generator.generate(url)
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=_run, name="codegen", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        logger.warning("code generation for %s still running after %ss; abandoned", url, timeout)
        raise CodeGenerationFailed(f"code generation for {url} timed out after {timeout}s")
    if "error" in outcome:
        exc = outcome["error"]
        raise CodeGenerationFailed(f"code generation for {url} failed: {exc}") from exc
    blob = outcome.get("blob")
    if not blob:
        raise CodeGenerationFailed(f"code generation for {url} returned nothing")
    return blob
