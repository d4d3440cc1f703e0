"""
Pydantic schemas for feed administration, import runs and previews.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from feed_catalog.domain.feeds.detector import SUPPORTED_FEED_TYPES, normalize_feed_type
from feed_catalog.domain.feeds.field_aliases import CANONICAL_FIELDS, TARGET_ALIASES


def _check_feed_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = normalize_feed_type(value)
    if normalized is None:
        raise ValueError(f"type must be one of {', '.join(SUPPORTED_FEED_TYPES)}")
    return normalized


def _check_field_mapping(value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    cleaned: Dict[str, str] = {}
    for source, target in value.items():
        canonical = TARGET_ALIASES.get(target.strip(), target.strip())
        if canonical not in CANONICAL_FIELDS:
            raise ValueError(f"Unknown target field '{target}' for source '{source}'")
        cleaned[source] = canonical
    return cleaned


class FeedBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, description="HTTP(S) URL or absolute path of the feed")
    type: str = Field(default="xml", description="xml, json or csv")
    schedule: str = Field(default="daily", max_length=50)
    is_active: bool = True
    xml_item_path: str = Field(default="SHOPITEM", description="Item element name for XML feeds")
    field_mapping: Dict[str, str] = Field(
        default_factory=dict,
        description="Raw field name -> canonical field name",
    )

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        return _check_feed_type(value)

    @field_validator("field_mapping")
    @classmethod
    def validate_field_mapping(cls, value: Dict[str, str]) -> Dict[str, str]:
        return _check_field_mapping(value)


class FeedCreateRequest(FeedBase):
    """Schema for registering a vendor feed."""


class FeedUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their stored values."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = None
    schedule: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None
    xml_item_path: Optional[str] = None
    field_mapping: Optional[Dict[str, str]] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return _check_feed_type(value)

    @field_validator("field_mapping")
    @classmethod
    def validate_field_mapping(cls, value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        return _check_field_mapping(value)


class FeedResponse(BaseModel):
    id: str
    name: str
    url: str
    type: str
    schedule: str
    is_active: bool
    xml_item_path: str
    field_mapping: Dict[str, str]
    last_run: Optional[str] = None
    last_status: str
    product_count: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FeedListResponse(BaseModel):
    success: bool
    feeds: List[FeedResponse]
    total_count: int


class FeedPreviewRequest(BaseModel):
    url: str = Field(..., min_length=1)
    type: Optional[str] = Field(None, description="Skip detection and parse as this type")
    item_path: Optional[str] = Field(None, description="Item element name for XML feeds")

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return _check_feed_type(value)


class FeedPreviewResponse(BaseModel):
    success: bool
    detected_type: str
    total_items: int
    fields: List[str]
    sample: List[Dict[str, Any]]
    normalized_sample: List[Dict[str, Any]]


class ImportStartResponse(BaseModel):
    success: bool
    message: str


class ImportCancelResponse(BaseModel):
    success: bool
    cancelled: bool


class FeedProgressResponse(BaseModel):
    feed_id: str
    status: str
    message: str = ""
    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    percent: int = 0
    logs: List[str] = Field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class FeedHistoryRecord(BaseModel):
    id: str
    feed_id: str
    status: str
    total_items: int
    created: int
    updated: int
    skipped: int
    errors: int
    duration: Optional[float] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class FeedHistoryResponse(BaseModel):
    success: bool
    history: List[FeedHistoryRecord]
