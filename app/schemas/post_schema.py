# app/schemas/post_schema.py

from datetime import date, datetime, time, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


# -----------------------------------------------------
# CANONICAL ORDER REFERENCES
# -----------------------------------------------------
class RemoteOrderRef(BaseModel):
    """Keep the stored media item `id` at this position."""

    kind: Literal["remote"] = "remote"
    id: int


class LocalOrderRef(BaseModel):
    """Place the uploaded file at `batch_index` of this request at this position."""

    kind: Literal["local"] = "local"
    batch_index: int


EncodedRef = Annotated[
    Union[RemoteOrderRef, LocalOrderRef],
    Field(discriminator="kind"),
]


# -----------------------------------------------------
# FOCUS POINT
# -----------------------------------------------------
def normalise_percent(value: float) -> float:
    return round(min(100.0, max(0.0, float(value))), 1)


class FocusPoint(BaseModel):
    x: float = 50.0
    y: float = 50.0

    @field_validator("x", "y")
    @classmethod
    def clamp(cls, v: float) -> float:
        return normalise_percent(v)


def dedupe_ids(values) -> list[str]:
    """Trim, drop empties and duplicates, keep first-seen order."""
    seen = set()
    out = []
    for raw in values or []:
        v = str(raw).strip()
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


# -----------------------------------------------------
# SUBMISSION PAYLOAD (create + patch)
# -----------------------------------------------------
class PostSubmission(BaseModel):
    title: str = ""
    description: str = ""
    allowed_role_ids: List[str] = []
    channel_ids: List[str] = []

    canonical_order: List[EncodedRef] = []

    # Only sent when editing an existing post
    removed_remote_ids: Optional[List[int]] = None

    clear_thumbnail: bool = False
    focus_point: FocusPoint = FocusPoint()
    post_date: Optional[datetime] = None

    @field_validator("allowed_role_ids", "channel_ids", mode="before")
    @classmethod
    def normalise_ids(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return dedupe_ids(v)

    @field_validator("post_date", mode="before")
    @classmethod
    def accept_plain_date(cls, v):
        # "2024-05-01" from a date picker means midnight UTC
        if isinstance(v, str) and len(v) == 10:
            try:
                return datetime.combine(date.fromisoformat(v), time(), tzinfo=timezone.utc)
            except ValueError:
                return v
        return v


# -----------------------------------------------------
# OUTPUT
# -----------------------------------------------------
class PostMediaOut(BaseModel):
    id: int
    position: int
    media_type: str
    content_type: Optional[str] = None
    filename: Optional[str] = None
    file_size: int = 0
    has_thumbnail: bool = False

    # Resolved per viewer: full asset when unlocked, thumbnail otherwise
    url: str
    thumbnail_url: str
    locked: bool


class PostOut(BaseModel):
    id: str
    post_key: str
    author_id: str
    author_name: Optional[str] = None

    title: str
    description: str
    allowed_role_ids: List[str]
    channel_ids: List[str]
    focus_point: FocusPoint
    timestamp: datetime

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    media: List[PostMediaOut] = []

    # 👇 viewer permissions
    can_access: bool
    can_edit: bool

    model_config = {"from_attributes": True}
