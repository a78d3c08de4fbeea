import logging
import math

import pandas as pd

from treemap_layout import MIN_PARTITION_DIMENSION, build_layout

logger = logging.getLogger(__name__)

HEATMAP_SLIDE_ID = "ecomm-heatmap"
HEATMAP_SECTOR = "Top products"
LABEL_MAX_CHARS = 14
DEFAULT_TOP_N = 8

REQUIRED_COLUMNS = ("product", "sales")

# Standalone grid sample: product, revenue this period, % change vs last period
DEMO_PRODUCTS = [
    {"product": "Cloud Hoodie", "sales": 48200.0, "sales_delta_pct": 4.2},
    {"product": "Trail Runner Sneakers", "sales": 36150.0, "sales_delta_pct": -1.8},
    {"product": "Weekender Backpack", "sales": 22900.0, "sales_delta_pct": 2.5},
    {"product": "Polarized Sunglasses", "sales": 15400.0, "sales_delta_pct": -3.6},
    {"product": "Field Watch", "sales": 12800.0, "sales_delta_pct": 0.4},
    {"product": "Logo Cap", "sales": 9100.0, "sales_delta_pct": 6.1},
    {"product": "Merino Socks (3-pack)", "sales": 7300.0, "sales_delta_pct": -0.7},
    {"product": "Gift Card", "sales": 5200.0, "sales_delta_pct": 1.1},
    {"product": "Canvas Tote", "sales": 3100.0, "sales_delta_pct": -2.2},
]


def safe_pct(value):
    """Percent change usable for coloring: missing / NaN / inf become 0."""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def load_products_csv(path):
    """
    Load aggregated product sales from a CSV file.

    Needs `product` and `sales` columns; `sales_delta_pct` is optional.
    """
    df = pd.read_csv(path)

    if df.empty:
        raise ValueError(f"CSV at {path} is empty.")

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"CSV at {path} is missing column(s): {', '.join(missing)}")

    return df


def _as_frame(products):
    if isinstance(products, pd.DataFrame):
        return products.copy()
    return pd.DataFrame(list(products))


def top_products(products, limit=DEFAULT_TOP_N):
    """
    Turn product sales rows into treemap items for the biggest sellers.

    products: DataFrame or list of dicts with product, sales, sales_delta_pct
    Rows with missing, negative or non-finite sales are dropped here, since
    the layout rejects such weights.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    df = _as_frame(products)
    if df.empty or "sales" not in df.columns:
        return []

    df["sales"] = pd.to_numeric(df["sales"], errors="coerce")
    valid = df["sales"].notna() & (df["sales"] >= 0) & df["sales"].abs().ne(math.inf)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("Skipping %d product row(s) with invalid sales", dropped)
    df = df[valid]

    # stable sort keeps the input order for equal sales
    df = df.sort_values("sales", ascending=False, kind="mergesort").head(limit)

    items = []
    for idx, row in enumerate(df.to_dict("records")):
        name = str(row.get("product", ""))
        items.append({
            "id": f"prod-{idx}",
            "label": name[:LABEL_MAX_CHARS],
            "name": name,
            "sector": HEATMAP_SECTOR,
            "weight": float(row["sales"]),
            "change": safe_pct(row.get("sales_delta_pct")),
        })
    return items


def build_heatmap_slide(products, currency_code="USD", limit=DEFAULT_TOP_N,
                        min_dimension=MIN_PARTITION_DIMENSION):
    """
    The "Where your revenue came from" slide, or None when there is nothing to show.
    """
    tiles = build_layout(top_products(products, limit=limit), min_dimension=min_dimension)
    if not tiles:
        return None

    return {
        "id": HEATMAP_SLIDE_ID,
        "type": "heatmap",
        "title": "Where your revenue came from",
        "subtitle": "Each tile shows a product's share of revenue and its change vs last year.",
        "payload": {"tiles": tiles, "currency_code": currency_code},
    }
