from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class AssetType(str, Enum):
    IMAGE = "image"
    FONT = "font"
    COLOR = "color"


class TemplateRule(SQLModel, table=True):
    __tablename__ = "template_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    sku_pattern: str
    template_filename: str
    priority: int = Field(default=0)


class AssetRule(SQLModel, table=True):
    __tablename__ = "asset_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    trigger_keyword: str
    asset_type: AssetType
    value: str


class TemplateRuleCreate(SQLModel):
    sku_pattern: str = Field(min_length=1)
    template_filename: str = Field(min_length=1)
    priority: int = 0


class AssetRuleCreate(SQLModel):
    trigger_keyword: str = Field(min_length=1)
    asset_type: AssetType
    value: str = Field(min_length=1)
