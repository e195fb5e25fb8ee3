# stylestudio/model.py
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal, Dict

Status = Literal["pending", "done", "error"]


class Category(str, Enum):
    MALE = "male"
    FEMALE = "female"


class ImagePayload(BaseModel):
    """Decomposed `data:<media_type>;base64,<data>` reference."""

    model_config = ConfigDict(frozen=True)

    media_type: str = Field(pattern=r"^image/\w+$")
    data: str = Field(min_length=1)


class WorkItem(BaseModel):
    """State of one hairstyle card. Replaced wholesale on every change."""

    model_config = ConfigDict(frozen=True)

    label: str
    status: Status = "pending"
    image: Optional[ImagePayload] = None
    error_message: Optional[str] = None


# --- HTTP request / response bodies ---

class StartRunRequest(BaseModel):
    category: Category
    image: str  # data URI of the uploaded photo


class RemixRequest(BaseModel):
    prompt: str


class ItemView(BaseModel):
    label: str
    status: Status
    image_url: Optional[str] = None
    error_message: Optional[str] = None


class RunState(BaseModel):
    category: Optional[Category] = None
    running: bool = False
    items: Dict[str, ItemView] = Field(default_factory=dict)


class AlbumResponse(BaseModel):
    image_url: str
