# lego_scraper/pipeline/__init__.py

# This file makes the page handlers directly available from the 'pipeline' package.
from .handlers import handle_catalog, handle_default, handle_product
