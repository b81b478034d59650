# lego_scraper/delegates/__init__.py

# This file makes the delegate classes directly available from the 'delegates' package.
# Instead of: from lego_scraper.delegates.browser_delegate import BrowserDelegate
# We can now use: from lego_scraper.delegates import BrowserDelegate

from .browser_delegate import BrowserDelegate
from .file_manager_delegate import FileManagerDelegate, artifact_name
