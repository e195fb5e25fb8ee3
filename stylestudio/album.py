# stylestudio/album.py
"""Compose the finished hairstyle images into a single album page."""

import base64
import binascii
import math
from io import BytesIO
from typing import Mapping, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from .errors import InvalidImageFormat
from .model import ImagePayload
from .utils import image_bytes

PHOTO_SIZE = 400
CARD_BORDER = 20
CAPTION_HEIGHT = 70
GAP = 40
MARGIN = 60
TITLE_HEIGHT = 120
MAX_COLUMNS = 3

PAGE_COLOR = (18, 18, 18)
CARD_COLOR = (245, 243, 236)
CAPTION_COLOR = (30, 30, 30)
TITLE_COLOR = (235, 235, 235)


def _open(label: str, payload: ImagePayload) -> Image.Image:
    try:
        img = Image.open(BytesIO(image_bytes(payload)))
        img.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        raise InvalidImageFormat(f"Cannot read image for {label!r}: {e}") from e
    return img.convert("RGB")


def _text_size(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[int, int]:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return right - left, bottom - top


def _card(label: str, payload: ImagePayload, font) -> Image.Image:
    """Polaroid-style card: square photo on a light frame, caption underneath."""
    card_w = PHOTO_SIZE + 2 * CARD_BORDER
    card_h = PHOTO_SIZE + CARD_BORDER + CAPTION_HEIGHT
    card = Image.new("RGB", (card_w, card_h), CARD_COLOR)

    photo = ImageOps.fit(_open(label, payload), (PHOTO_SIZE, PHOTO_SIZE))
    card.paste(photo, (CARD_BORDER, CARD_BORDER))

    draw = ImageDraw.Draw(card)
    text_w, text_h = _text_size(draw, label, font)
    x = max((card_w - text_w) // 2, 0)
    y = PHOTO_SIZE + CARD_BORDER + (CAPTION_HEIGHT - text_h) // 2
    draw.text((x, y), label, fill=CAPTION_COLOR, font=font)
    return card


def compose_album(
    images: Mapping[str, ImagePayload],
    title: str = "Hairstyle Studio",
    quality: int = 92,
) -> ImagePayload:
    """
    Lay every image out on a grid (up to 3 columns), in mapping order.
    Returns the page as a JPEG ImagePayload.
    """
    if not images:
        raise ValueError("Album needs at least one image")

    caption_font = ImageFont.load_default(size=28)
    title_font = ImageFont.load_default(size=64)

    cols = min(MAX_COLUMNS, len(images))
    rows = math.ceil(len(images) / cols)
    card_w = PHOTO_SIZE + 2 * CARD_BORDER
    card_h = PHOTO_SIZE + CARD_BORDER + CAPTION_HEIGHT

    page_w = 2 * MARGIN + cols * card_w + (cols - 1) * GAP
    page_h = 2 * MARGIN + TITLE_HEIGHT + rows * card_h + (rows - 1) * GAP
    page = Image.new("RGB", (page_w, page_h), PAGE_COLOR)

    draw = ImageDraw.Draw(page)
    title_w, title_h = _text_size(draw, title, title_font)
    draw.text(
        ((page_w - title_w) // 2, MARGIN + (TITLE_HEIGHT - title_h) // 2 - GAP // 2),
        title,
        fill=TITLE_COLOR,
        font=title_font,
    )

    for i, (label, payload) in enumerate(images.items()):
        row, col = divmod(i, cols)
        x = MARGIN + col * (card_w + GAP)
        y = MARGIN + TITLE_HEIGHT + row * (card_h + GAP)
        page.paste(_card(label, payload, caption_font), (x, y))

    buf = BytesIO()
    page.save(buf, format="JPEG", quality=quality)
    return ImagePayload(media_type="image/jpeg", data=base64.b64encode(buf.getvalue()).decode("ascii"))
