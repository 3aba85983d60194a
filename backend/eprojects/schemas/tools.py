from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ToolCategory = Literal["mechanical", "electrical", "textile", "informatics", "chemical"]
ToolAccessLevel = Literal["E-BASIC", "E-TOOL", "E-MASTER"]
ToolLinkType = Literal["internal", "external", "custom"]


class ToolOut(BaseModel):
    id: int
    name: str
    description: str
    category: ToolCategory
    access_level: ToolAccessLevel
    link_type: ToolLinkType
    link: str | None = None
    custom_html: str | None = None
    show_in_iframe: bool
    average_rating: float
    total_ratings: int
    locked: bool = False
    restricted_cpfs: str | None = None
    created_at: datetime | None = None


class ToolCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    category: ToolCategory
    access_level: ToolAccessLevel = "E-BASIC"
    link_type: ToolLinkType = "external"
    link: str | None = Field(default=None, max_length=2048)
    custom_html: str | None = None
    show_in_iframe: bool = False
    restricted_cpfs: str | None = None


class ToolUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: ToolCategory | None = None
    access_level: ToolAccessLevel | None = None
    link_type: ToolLinkType | None = None
    link: str | None = Field(default=None, max_length=2048)
    custom_html: str | None = None
    show_in_iframe: bool | None = None
    restricted_cpfs: str | None = None


class ToolRateIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)


class ToolRatingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tool_id: int
    user_id: int
    rating: int
    comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ToolRateOut(BaseModel):
    rating: ToolRatingOut
    average_rating: float
    total_ratings: int
