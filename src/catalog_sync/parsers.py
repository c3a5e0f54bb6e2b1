"""Parsers that convert raw source responses into ``Candidate`` records."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import Candidate


def extract_affiliate_candidate(item: Dict[str, Any]) -> Candidate:
    item_info = item.get("ItemInfo") or {}
    title = _get_nested(item_info, "Title", "DisplayValue")
    brand = _get_nested(item_info, "ByLineInfo", "Brand", "DisplayValue")
    department = _get_nested(item_info, "Classifications", "ProductGroup", "DisplayValue")

    browse_nodes = _get_nested(item, "BrowseNodeInfo", "BrowseNodes") or []
    category_hint = browse_nodes[0].get("DisplayName") if browse_nodes else None

    price = None
    in_stock = False
    offers = item.get("Offers") or {}
    if offers.get("Listings"):
        listing = offers["Listings"][0]
        price = _safe_float(_get_nested(listing, "Price", "Amount"))
        availability = _get_nested(listing, "Availability", "Type")
        in_stock = price is not None and availability in (None, "Now")
    elif offers.get("Summaries"):
        price = _safe_float(_get_nested(offers["Summaries"][0], "LowestPrice", "Amount"))

    return Candidate(
        external_id=item["ASIN"],
        title=(title or "").strip(),
        price=price,
        in_stock=in_stock,
        url=item.get("DetailPageURL"),
        image_url=_get_nested(item, "Images", "Primary", "Medium", "URL"),
        category_hint=category_hint,
        vendor=brand,
        department=department,
        raw=item,
    )


def parse_items_response(response: Dict[str, Any]) -> List[Candidate]:
    result = response.get("SearchResult") or response.get("ItemsResult") or {}
    candidates: List[Candidate] = []
    for item in result.get("Items", []):
        if not item.get("ASIN"):
            continue
        candidates.append(extract_affiliate_candidate(item))
    return candidates


def extract_storefront_candidate(product: Dict[str, Any], base_url: str) -> Optional[Candidate]:
    """One candidate per storefront product, priced by its cheapest available variant."""

    product_id = product.get("id")
    title = (product.get("title") or "").strip()
    if product_id is None or not title:
        return None

    variants = product.get("variants") or []
    available = [v for v in variants if v.get("available")]
    priced = [p for p in (_safe_float(v.get("price")) for v in (available or variants)) if p is not None]

    images = product.get("images") or []
    handle = product.get("handle")
    return Candidate(
        external_id=str(product_id),
        title=title,
        price=min(priced) if priced else None,
        in_stock=bool(available),
        url=f"{base_url.rstrip('/')}/products/{handle}" if handle else None,
        image_url=images[0].get("src") if images else None,
        category_hint=product.get("product_type") or None,
        vendor=product.get("vendor") or None,
        product_type=product.get("product_type") or None,
        raw=product,
    )


def parse_storefront_products(response: Dict[str, Any], base_url: str) -> List[Candidate]:
    candidates: List[Candidate] = []
    for product in response.get("products", []):
        candidate = extract_storefront_candidate(product, base_url)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _get_nested(data: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
        if data is None:
            return None
    return data


def _safe_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
