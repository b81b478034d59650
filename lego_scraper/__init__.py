# lego_scraper/__init__.py
