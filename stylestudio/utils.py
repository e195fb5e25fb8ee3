import base64
import re
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from .errors import InvalidImageFormat
from .model import ImagePayload

DATA_URI_RE = re.compile(r"^data:(image/\w+);base64,(.+)$", re.DOTALL)


def decode_data_uri(uri: str) -> ImagePayload:
    """
    Split `data:image/...;base64,...` into media type + base64 payload.
    Anything else raises InvalidImageFormat.
    """
    m = DATA_URI_RE.match(uri or "")
    if not m:
        raise InvalidImageFormat(
            "Invalid image data URL. Expected 'data:image/...;base64,...'"
        )
    media_type, data = m.groups()
    return ImagePayload(media_type=media_type, data=data)


def encode_data_uri(payload: ImagePayload) -> str:
    return f"data:{payload.media_type};base64,{payload.data}"


def image_from_bytes(raw: bytes, media_type: Optional[str] = None) -> ImagePayload:
    """
    Wrap raw image bytes. When media_type is missing, Pillow sniffs the format.
    """
    if not raw:
        raise InvalidImageFormat("Image is empty")
    if media_type is None:
        try:
            with Image.open(BytesIO(raw)) as img:
                fmt = img.format
        except UnidentifiedImageError as e:
            raise InvalidImageFormat(f"Unrecognised image data: {e}") from e
        media_type = Image.MIME.get(fmt or "", "")
    try:
        return ImagePayload(media_type=media_type, data=base64.b64encode(raw).decode("ascii"))
    except ValidationError as e:
        raise InvalidImageFormat(f"Not an image media type: {media_type!r}") from e


def image_from_file(path: Union[str, Path]) -> ImagePayload:
    return image_from_bytes(Path(path).read_bytes())


def image_bytes(payload: ImagePayload) -> bytes:
    return base64.b64decode(payload.data)


def file_extension(payload: ImagePayload) -> str:
    # image/jpeg -> jpg, image/png -> png
    ext = payload.media_type.split("/", 1)[1]
    return "jpg" if ext == "jpeg" else ext


def safe_filename(label: str) -> str:
    """'French Bob (with Bangs)' -> 'french-bob-with-bangs'"""
    slug = re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-")
    return slug or "image"
