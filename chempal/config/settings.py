# chempal/config/settings.py

"""Central configuration for the chempal supplier pipeline."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a float tunable from ``CHEMPAL_<name>``, else *default*."""
    raw = os.getenv(f"CHEMPAL_{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Read an int tunable from ``CHEMPAL_<name>``, else *default*."""
    return int(_env_float(name, default))


class Settings:
    """Central configuration for the chempal supplier pipeline."""

    # --- HTTP ---
    REQUEST_DELAY: float = _env_float("REQUEST_DELAY", 1.0)  # Retry backoff base
    REQUEST_TIMEOUT: int = _env_int("REQUEST_TIMEOUT", 15)
    MAX_RETRIES: int = _env_int("MAX_RETRIES", 3)
    MAX_PAGES: int = 10                 # Max pagination depth per supplier
    MIN_REQUEST_INTERVAL: float = 0.1   # Throttle between detail fetches

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Supplier limits ---
    DEFAULT_RESULT_LIMIT: int = _env_int("RESULT_LIMIT", 5)
    HTTP_REQUEST_HARD_LIMIT: int = _env_int("REQUEST_HARD_LIMIT", 50)
    MAX_CONCURRENT_REQUESTS: int = _env_int("MAX_CONCURRENT", 5)

    # --- Matching ---
    FUZZY_CUTOFF: float = _env_float("FUZZY_CUTOFF", 40.0)

    # --- HTTP cache ---
    HTTP_CACHE_SIZE: int = _env_int("HTTP_CACHE_SIZE", 100)
    HTTP_CACHE_TTL: float = _env_float("HTTP_CACHE_TTL", 3600.0)
    HTTP_CACHE_DIR: Path | None = (
        Path(os.environ["CHEMPAL_HTTP_CACHE_DIR"])
        if os.getenv("CHEMPAL_HTTP_CACHE_DIR")
        else None
    )

    # --- Currency ---
    DISPLAY_CURRENCY: str = os.getenv("CHEMPAL_CURRENCY", "USD").upper()
    EXCHANGE_RATE_URL: str = (
        "https://hexarate.paikama.co/api/rates/latest/{source}"
        "?target={target}"
    )
    EXCHANGE_RATE_TTL: float = 3600.0

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,application/json;q=0.9,"
            "*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "chempal" / "config" / "selectors.json"
    RESULTS_DIR: Path = BASE_DIR / "results"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Suppliers ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "carolina_chemical",
            "label": "Carolina Chemical",
            "supplier": "chempal.suppliers.woocommerce.WooCommerceSupplier",
            "base_url": "https://carolinachemical.com",
            "country": "US",
            "shipping": "domestic",
        },
        {
            "id": "libertysci",
            "label": "LibertySci",
            "supplier": "chempal.suppliers.woocommerce.WooCommerceSupplier",
            "base_url": "https://libertysci.com",
            "country": "US",
            "shipping": "worldwide",
        },
        {
            "id": "biofuranchem",
            "label": "BioFuran Chem",
            "supplier": "chempal.suppliers.wix.WixSupplier",
            "base_url": "https://www.biofuranchem.com",
            "country": "US",
            "shipping": "international",
        },
        {
            "id": "ftf_scientific",
            "label": "FTF Scientific",
            "supplier": "chempal.suppliers.wix.WixSupplier",
            "base_url": "https://www.ftfscientific.com",
            "country": "US",
            "shipping": "worldwide",
        },
        {
            "id": "warchem",
            "label": "Warchem",
            "supplier": "chempal.suppliers.html_catalog.HtmlCatalogSupplier",
            "base_url": "https://warchem.pl",
            "country": "PL",
            "shipping": "domestic",
            "currency": "PLN",
        },
    ]
