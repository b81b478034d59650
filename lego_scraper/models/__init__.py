# lego_scraper/models/__init__.py

# This file makes the model classes directly available from the 'models' package.
# Instead of: from lego_scraper.models.product_models import CanonicalProduct
# We can now use: from lego_scraper.models import CanonicalProduct

from .product_models import Availability, CanonicalProduct, CrawlRequest, PageLabel
