import math

import pandas as pd
import pytest

from heatmap_data import (
    DEMO_PRODUCTS,
    HEATMAP_SECTOR,
    build_heatmap_slide,
    load_products_csv,
    safe_pct,
    top_products,
)


@pytest.mark.parametrize("value, expected", [
    (None, 0.0),
    (math.nan, 0.0),
    (math.inf, 0.0),
    (-math.inf, 0.0),
    ("n/a", 0.0),
    (2.5, 2.5),
    ("-1.25", -1.25),
])
def test_safe_pct(value, expected):
    assert safe_pct(value) == expected


def test_top_products_from_demo_rows():
    items = top_products(DEMO_PRODUCTS)
    assert len(items) == 8
    assert [i["id"] for i in items] == [f"prod-{n}" for n in range(8)]
    assert items[0]["name"] == "Cloud Hoodie"
    assert items[0]["weight"] == 48200.0
    assert items[0]["change"] == 4.2
    assert items[1]["label"] == "Trail Runner S"
    assert all(len(i["label"]) <= 14 for i in items)
    assert all(i["sector"] == HEATMAP_SECTOR for i in items)
    # smallest demo product falls outside the top 8
    assert "Canvas Tote" not in {i["name"] for i in items}


def test_top_products_sorts_and_limits():
    rows = [
        {"product": "Mug", "sales": 30.0, "sales_delta_pct": 1.0},
        {"product": "Hoodie", "sales": 160.0, "sales_delta_pct": -2.0},
        {"product": "Poster", "sales": 60.0, "sales_delta_pct": 0.0},
    ]
    items = top_products(rows, limit=2)
    assert [i["name"] for i in items] == ["Hoodie", "Poster"]


def test_top_products_drops_invalid_sales():
    df = pd.DataFrame([
        {"product": "Hoodie", "sales": 40.0, "sales_delta_pct": 1.0},
        {"product": "Refunded", "sales": -10.0, "sales_delta_pct": 1.0},
        {"product": "Unknown", "sales": None, "sales_delta_pct": 1.0},
        {"product": "Broken", "sales": math.inf, "sales_delta_pct": 1.0},
        {"product": "Text", "sales": "abc", "sales_delta_pct": 1.0},
    ])
    items = top_products(df)
    assert [i["name"] for i in items] == ["Hoodie"]


def test_top_products_missing_change_column():
    items = top_products(pd.DataFrame({"product": ["Hoodie"], "sales": [10]}))
    assert items[0]["change"] == 0.0


def test_top_products_nan_change():
    items = top_products([{"product": "Mug", "sales": 5.0, "sales_delta_pct": math.nan}])
    assert items[0]["change"] == 0.0


def test_top_products_empty():
    assert top_products([]) == []
    assert top_products(pd.DataFrame()) == []


def test_build_heatmap_slide():
    slide = build_heatmap_slide(DEMO_PRODUCTS, currency_code="EUR")
    assert slide["id"] == "ecomm-heatmap"
    assert slide["type"] == "heatmap"
    assert slide["title"] == "Where your revenue came from"
    assert slide["payload"]["currency_code"] == "EUR"

    tiles = slide["payload"]["tiles"]
    assert len(tiles) == 8
    assert sum(t["width"] * t["height"] for t in tiles) == pytest.approx(10000)
    assert all(t["color"].startswith("hsl(") for t in tiles)


def test_build_heatmap_slide_without_products():
    assert build_heatmap_slide([]) is None
    assert build_heatmap_slide([{"product": "Refunded", "sales": -1}]) is None


def test_load_products_csv(tmp_path):
    path = tmp_path / "products.csv"
    path.write_text("product,sales,sales_delta_pct\nHoodie,120.5,3.1\nMug,20,-0.5\n", encoding="utf-8")
    df = load_products_csv(path)
    assert list(df["product"]) == ["Hoodie", "Mug"]
    assert top_products(df)[0]["weight"] == 120.5


def test_load_products_csv_missing_column(tmp_path):
    path = tmp_path / "products.csv"
    path.write_text("product,revenue\nHoodie,10\n", encoding="utf-8")
    with pytest.raises(ValueError, match="sales"):
        load_products_csv(path)


def test_load_products_csv_header_only(tmp_path):
    path = tmp_path / "products.csv"
    path.write_text("product,sales\n", encoding="utf-8")
    with pytest.raises(ValueError, match="empty"):
        load_products_csv(path)


def test_negative_limit_rejected():
    with pytest.raises(ValueError, match="limit"):
        top_products(DEMO_PRODUCTS, limit=-3)
    with pytest.raises(ValueError):
        build_heatmap_slide(DEMO_PRODUCTS, limit=-3)


def test_zero_limit_gives_no_slide():
    assert top_products(DEMO_PRODUCTS, limit=0) == []
    assert build_heatmap_slide(DEMO_PRODUCTS, limit=0) is None
