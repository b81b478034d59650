# lego_scraper/models/product_models.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Availability(str, Enum):
    AVAILABLE = "Available"
    OUT_OF_STOCK = "Out of Stock"
    COMING_SOON = "Coming Soon"
    BACKORDER = "Backorder"
    TEMPORARILY_OUT_OF_STOCK = "Temporarily Out of Stock"


class PageLabel(str, Enum):
    CATALOG = "CATALOG"
    PRODUCT = "PRODUCT"


@dataclass
class CrawlRequest:
    """A single page visit waiting in the run queue."""
    url: str
    label: str = PageLabel.CATALOG.value
    max_products: int = 0
    user_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CanonicalProduct:
    """
    This class is the blueprint for our final output. It represents one product,
    normalized the same way whichever source (captured API data or rendered
    markup) it came from.

    Numeric fields are either a valid non-negative number or None. Textual
    fields (name, theme) are "" when confirmed blank.
    """
    set_number: str
    name: str
    theme: str
    pieces: Optional[int]
    minifigures: Optional[int]
    rating: Optional[float]
    review_count: Optional[int]
    retail_price: Optional[str]
    sale_price: Optional[str]
    is_on_sale: bool
    discount_percentage: Optional[int]
    # None only while a product page record still awaits its captured counterpart.
    availability: Optional[str]
    tags: Tuple[str, ...]
    image_url: Optional[str]
    product_url: str
    scraped_at: str
    age_range: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Returns the camelCase dict written to the dataset."""
        record = {
            "setNumber": self.set_number,
            "name": self.name,
            "theme": self.theme,
            "pieces": self.pieces,
            "minifigures": self.minifigures,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "retailPrice": self.retail_price,
            "salePrice": self.sale_price,
            "isOnSale": self.is_on_sale,
            "discountPercentage": self.discount_percentage,
            "availability": self.availability,
            "tags": list(self.tags),
            "imageUrl": self.image_url,
            "productUrl": self.product_url,
            "scrapedAt": self.scraped_at,
        }
        if self.age_range is not None:
            record["ageRange"] = self.age_range
        return record
