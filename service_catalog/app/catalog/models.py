"""
Product data models for the Catalog Service.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class SortField(str, Enum):
    """Sortable listing columns."""
    PRICE = "price"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    """Sort directions."""
    ASC = "asc"
    DESC = "desc"


MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
DEFAULT_CATEGORY = "uncategorized"
DEFAULT_CURRENCY = "EUR"
# NUMERIC(12, 2) and INTEGER column bounds.
MAX_PRICE = 9999999999.99
MAX_STOCK = 2 ** 31 - 1


@dataclass
class ProductListQuery:
    """Filter, sort and pagination parameters of a listing request."""
    q: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.ASC
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def limit(self) -> int:
        return min(self.page_size, MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def to_descriptor(self) -> Dict[str, Any]:
        """Flatten into the query descriptor used for cache keys."""
        return {
            "q": self.q,
            "category": self.category,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "sort": self.sort.value,
            "order": self.order.value,
            "page": self.page,
            "page_size": self.limit,
        }


class CategoryResponse(BaseModel):
    """Category as embedded in product responses."""
    id: int
    name: str


class ProductResponse(BaseModel):
    """Response model for a product."""
    id: int
    sku: str
    name: str
    description: Optional[str] = None
    price: float
    currency: str
    stock: int
    image_url: Optional[str] = None
    category: Optional[CategoryResponse] = None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    """Response model for product listings."""
    items: List[ProductResponse]
    page: int
    page_size: int
    total: int
    total_pages: int
    cached: bool
    duration_ms: float


class ProductCreateRequest(BaseModel):
    """Request model for creating a product."""
    sku: str = Field(..., min_length=1, max_length=64, description="Stock keeping unit")
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, le=MAX_PRICE, allow_inf_nan=False, description="Unit price")
    currency: str = Field(DEFAULT_CURRENCY, min_length=3, max_length=3, description="ISO 4217 code")
    stock: int = Field(0, ge=0, le=MAX_STOCK, description="Units in stock")
    category: str = Field(DEFAULT_CATEGORY, min_length=1, max_length=100, description="Category name")
    image_url: Optional[str] = Field(None, description="Public image URL")

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value is not None else value


class ProductUpdateRequest(BaseModel):
    """Request model for updating a product. Omitted fields are left unchanged."""
    sku: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, le=MAX_PRICE, allow_inf_nan=False)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    stock: Optional[int] = Field(None, ge=0, le=MAX_STOCK)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    image_url: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value is not None else value
