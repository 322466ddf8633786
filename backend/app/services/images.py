from __future__ import annotations

import base64
import io

from PIL import Image


def recompress_jpeg(data: bytes, max_width: int, quality: int) -> bytes:
    """Downscale to at most `max_width` pixels wide and re-encode as JPEG at `quality`."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        if img.width > max_width:
            new_height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def to_data_uri(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{to_base64(data)}"
