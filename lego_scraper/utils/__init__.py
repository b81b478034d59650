# lego_scraper/utils/__init__.py

from .lookup import clean_text, dig, first_of, is_present
