# chempal/storage/session_store.py

"""Persists the last merged result set and exports search results."""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from chempal.config.settings import Settings
from chempal.models.product import Product

logger = logging.getLogger("chempal.storage")

SESSION_FILENAME = "last_search.json"


def _slug(query: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in query.strip())[:60]


def _price_key(product: Product) -> float:
    return product.usd_price if product.usd_price is not None else product.price


class SessionStore:
    """Write-through sink for search sessions under ``results/``."""

    def __init__(self, results_dir: Path | None = None) -> None:
        self.results_dir: Path = results_dir or Settings.RESULTS_DIR
        self.results_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("SessionStore ready, results_dir=%s", self.results_dir)

    @property
    def session_path(self) -> Path:
        return self.results_dir / SESSION_FILENAME

    def save_session(
        self,
        query: str,
        products: list[Product],
        page: int = 1,
        page_size: int = 20,
    ) -> Path:
        """Overwrite the last-search file with *products* and paging."""
        payload: dict[str, Any] = {
            "query": query,
            "saved_at": datetime.now().isoformat(timespec="seconds"),
            "page": page,
            "page_size": page_size,
            "total": len(products),
            "products": [p.to_dict() for p in products],
        }
        with open(self.session_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        logger.info(
            "Session for '%s' saved (%d products)", query, len(products)
        )
        return self.session_path

    def load_session(self) -> dict[str, Any] | None:
        """Return the last saved session, or None if absent or unreadable."""
        try:
            with open(self.session_path, encoding="utf-8") as f:
                data: dict[str, Any] = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file: %s", exc)
            return None
        if not isinstance(data, dict) or "products" not in data:
            logger.warning("Ignoring malformed session file %s", self.session_path)
            return None
        return data

    def clear_session(self) -> None:
        self.session_path.unlink(missing_ok=True)

    def save_results(
        self, query: str, products: list[Product], source: str = "combined"
    ) -> Path:
        """Save products to a timestamped JSON file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = self.results_dir / f"{source}_{_slug(query)}_{timestamp}.json"
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(
                [p.to_dict() for p in products], f, ensure_ascii=False, indent=2
            )
        logger.info(
            "Saved %d products for query '%s' to %s",
            len(products),
            query,
            filepath,
        )
        return filepath

    def export_csv(
        self, query: str, products: list[Product], source: str = "combined"
    ) -> Path:
        """Export products to CSV, cheapest (in USD when known) first."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = (
            self.results_dir / f"export_{source}_{_slug(query)}_{timestamp}.csv"
        )
        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(
                ["Title", "Price", "Currency", "Quantity", "Unit",
                 "CAS", "Supplier", "URL"]
            )
            for p in sorted(products, key=_price_key):
                writer.writerow(
                    [p.title, p.price, p.currency_code, p.quantity, p.uom,
                     p.cas or "", p.supplier, p.url]
                )
        logger.info(
            "Exported %d products for query '%s' to %s",
            len(products),
            query,
            filepath,
        )
        return filepath
