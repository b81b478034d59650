# lego_scraper/pipeline/capture_store.py
import logging
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class CaptureStore:
    """
    Raw product dicts seen during one page visit, keyed by product identifier.
    The first capture of an identifier is kept; later ones are dropped.
    Build a new store for every visit.
    """

    def __init__(self):
        self._products: Dict[str, Dict[str, Any]] = {}

    def add(self, key: Optional[str], raw: Dict[str, Any]) -> bool:
        """Stores raw under key unless the key is empty or already taken. Returns True if stored."""
        if not key or key in self._products:
            return False
        self._products[key] = raw
        logger.debug("Captured product: %s", key)
        return True

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._products.get(key)

    def values(self) -> List[Dict[str, Any]]:
        return list(self._products.values())

    def keys(self) -> List[str]:
        return list(self._products.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._products

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._products))
