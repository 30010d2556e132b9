from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from farmlink.config.constants import CATEGORIES, UNITS, DEFAULT_UNIT


class ProductImage(BaseModel):
    url: str
    public_id: str


class ProductLocation(BaseModel):
    state: Optional[str] = None
    district: Optional[str] = None


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

    price: float = Field(..., ge=0)
    stock_quantity: int = Field(..., ge=0)

    category: str
    subcategory: Optional[str] = None
    unit: str = DEFAULT_UNIT

    images: List[ProductImage] = []
    location: Optional[ProductLocation] = None
    tags: List[str] = []
    is_available: bool = True

    @field_validator("category")
    @classmethod
    def _category(cls, v):
        if v not in CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(CATEGORIES)}")
        return v

    @field_validator("unit")
    @classmethod
    def _unit(cls, v):
        if v not in UNITS:
            raise ValueError(f"unit must be one of: {', '.join(UNITS)}")
        return v

    @field_validator("tags")
    @classmethod
    def _tags(cls, v):
        return [t.strip() for t in v if t and t.strip()]


class ProductUpdate(BaseModel):
    """
    Partial update. Owner and rating aggregates are not updatable.
    """
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)

    price: Optional[float] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)

    category: Optional[str] = None
    subcategory: Optional[str] = None
    unit: Optional[str] = None

    images: Optional[List[ProductImage]] = None
    location: Optional[ProductLocation] = None
    tags: Optional[List[str]] = None
    is_available: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def _category(cls, v):
        if v is not None and v not in CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(CATEGORIES)}")
        return v

    @field_validator("unit")
    @classmethod
    def _unit(cls, v):
        if v is not None and v not in UNITS:
            raise ValueError(f"unit must be one of: {', '.join(UNITS)}")
        return v
