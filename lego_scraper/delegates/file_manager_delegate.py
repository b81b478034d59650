# lego_scraper/delegates/file_manager_delegate.py
import json
import logging
import re
from pathlib import Path
from typing import Iterable, Union

from .. import config
from ..models import CanonicalProduct

logger = logging.getLogger(__name__)


def artifact_name(prefix: str, url: str) -> str:
    """File-safe artifact name unique to the visited URL, e.g. debug-screenshot_en-us_categories_all-sets."""
    path = re.sub(r"^https?://[^/]+", "", url).split("?", 1)[0]
    slug = re.sub(r"[^a-zA-Z0-9_-]+", "_", path).strip("_") or "root"
    return f"{prefix}_{slug}"[:150]


class FileManagerDelegate:
    """Handles all file system interactions: the product dataset and debug artifacts."""

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.dataset_path = base_path / "dataset"
        self.debug_path = base_path / "debug"
        self.dataset_file = self.dataset_path / config.DATASET_FILENAME

        for p in [self.dataset_path, self.debug_path]:
            p.mkdir(parents=True, exist_ok=True)
        logger.info("File manager initialized. Data will be stored in subdirectories of: %s", base_path)

    def push_data(self, products: Union[CanonicalProduct, Iterable[CanonicalProduct]]) -> int:
        """Appends one record or a batch to the dataset as JSON lines. Returns the number written."""
        if isinstance(products, CanonicalProduct):
            products = [products]
        written = 0
        try:
            with self.dataset_file.open("a", encoding="utf-8") as f:
                for product in products:
                    f.write(json.dumps(product.to_record(), ensure_ascii=False) + "\n")
                    written += 1
        except OSError as e:
            logger.error("Failed to append products to %s: %s", self.dataset_file, e, exc_info=True)
            raise
        logger.info("Saved %d products to %s", written, self.dataset_file.name)
        return written

    def save_debug_screenshot(self, name: str, image: bytes) -> Path:
        file_path = self.debug_path / f"{name}.png"
        file_path.write_bytes(image)
        logger.info("Saved debug screenshot to: %s", file_path.name)
        return file_path

    def save_debug_html(self, name: str, html_content: str) -> Path:
        file_path = self.debug_path / f"{name}.html"
        file_path.write_text(html_content, encoding="utf-8")
        logger.info("Saved debug HTML to: %s", file_path.name)
        return file_path
