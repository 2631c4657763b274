import base64
from io import BytesIO
from pathlib import Path
from typing import List, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..core.types import DetectedElement


def load_image(image_bytes: bytes) -> Image.Image:
    return Image.open(BytesIO(image_bytes)).convert("RGB")


def bytes_to_data_url(image_bytes: bytes, max_size: int = 960) -> str:
    """Optionally downscale to reduce token usage, return JPEG data URL."""
    img = load_image(image_bytes)
    w, h = img.size
    if max(w, h) > max_size:
        scale = max_size / max(w, h)
        img = img.resize((int(w * scale), int(h * scale)), Image.LANCZOS)

    buf = BytesIO()
    img.save(buf, format="JPEG", quality=75)
    b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    return f"data:image/jpeg;base64,{b64}"


def edge_density_grid(image_bytes: bytes, cell: int = 16, max_width: int = 640) -> Tuple[List[List[float]], float]:
    """Edge density per grid cell of a downscaled grayscale copy.

    Returns the grid (rows of densities in [0, 1]) and the scale factor
    that maps downscaled pixels back to the original image.
    """
    img = Image.open(BytesIO(image_bytes)).convert("L")
    w, h = img.size
    scale = 1.0
    if w > max_width:
        scale = w / max_width
        img = img.resize((max_width, max(1, int(h / scale))), Image.LANCZOS)

    edges = img.filter(ImageFilter.FIND_EDGES).point(lambda p: 255 if p > 40 else 0)
    ew, eh = edges.size
    pixels = edges.load()

    grid: List[List[float]] = []
    for top in range(0, eh, cell):
        row: List[float] = []
        for left in range(0, ew, cell):
            hits = 0
            total = 0
            for y in range(top, min(top + cell, eh)):
                for x in range(left, min(left + cell, ew)):
                    total += 1
                    if pixels[x, y]:
                        hits += 1
            row.append(hits / total if total else 0.0)
        grid.append(row)
    return grid, scale


def draw_detections_on_image(image_bytes: bytes, elements: List[DetectedElement], out_path: Path) -> Path:
    """Overlay detected element boxes and labels on the screenshot."""
    img = load_image(image_bytes)
    draw = ImageDraw.Draw(img)

    try:
        font = ImageFont.load_default()
    except Exception:
        font = None

    for idx, elem in enumerate(elements):
        box = elem.bbox
        x, y = int(box.x), int(box.y)
        w, h = int(box.width), int(box.height)
        draw.rectangle([x, y, x + w, y + h], outline=(255, 0, 0), width=2)
        label = f"{idx}:{elem.type}"
        draw.text((x + 2, y + 2), label, fill=(255, 0, 0), font=font)

    out_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(out_path)
    return out_path
