from catalog_sync.parsers import (
    extract_affiliate_candidate,
    extract_storefront_candidate,
    parse_items_response,
    parse_storefront_products,
)

AFFILIATE_ITEM = {
    "ASIN": "B0TEST0001",
    "DetailPageURL": "https://www.amazon.com/dp/B0TEST0001",
    "ItemInfo": {
        "Title": {"DisplayValue": " Sennheiser HD 600 Open Back Headphones "},
        "ByLineInfo": {"Brand": {"DisplayValue": "Sennheiser"}},
        "Classifications": {"ProductGroup": {"DisplayValue": "Headphones"}},
    },
    "BrowseNodeInfo": {"BrowseNodes": [{"DisplayName": "Over-Ear Headphones"}]},
    "Offers": {"Listings": [{"Price": {"Amount": 299.95}, "Availability": {"Type": "Now"}}]},
    "Images": {"Primary": {"Medium": {"URL": "https://m.media-amazon.com/hd600.jpg"}}},
}


def test_extract_affiliate_candidate():
    candidate = extract_affiliate_candidate(AFFILIATE_ITEM)

    assert candidate.external_id == "B0TEST0001"
    assert candidate.title == "Sennheiser HD 600 Open Back Headphones"
    assert candidate.price == 299.95
    assert candidate.in_stock
    assert candidate.vendor == "Sennheiser"
    assert candidate.department == "Headphones"
    assert candidate.category_hint == "Over-Ear Headphones"
    assert candidate.image_url.endswith("hd600.jpg")


def test_affiliate_availability_and_summaries():
    backorder = dict(
        AFFILIATE_ITEM, Offers={"Listings": [{"Price": {"Amount": 10}, "Availability": {"Type": "Backorder"}}]}
    )
    assert not extract_affiliate_candidate(backorder).in_stock

    summary = dict(AFFILIATE_ITEM, Offers={"Summaries": [{"LowestPrice": {"Amount": "249.00"}}]})
    candidate = extract_affiliate_candidate(summary)
    assert candidate.price == 249.0
    assert not candidate.in_stock

    bare = {"ASIN": "B0TEST0002"}
    candidate = extract_affiliate_candidate(bare)
    assert candidate.title == ""
    assert candidate.price is None


def test_parse_items_response_skips_items_without_asin():
    response = {"SearchResult": {"Items": [AFFILIATE_ITEM, {"ItemInfo": {}}]}}
    assert [c.external_id for c in parse_items_response(response)] == ["B0TEST0001"]
    assert parse_items_response({"ItemsResult": {"Items": [AFFILIATE_ITEM]}})[0].external_id == "B0TEST0001"
    assert parse_items_response({}) == []


def storefront_product(**overrides):
    product = {
        "id": 42,
        "title": "Moondrop Blessing 3",
        "handle": "moondrop-blessing-3",
        "vendor": "Moondrop",
        "product_type": "IEM",
        "images": [{"src": "https://cdn.example/b3.jpg"}],
        "variants": [
            {"price": "319.00", "available": False},
            {"price": "329.00", "available": True},
        ],
    }
    product.update(overrides)
    return product


def test_storefront_candidate_uses_cheapest_available_variant():
    candidate = extract_storefront_candidate(storefront_product(), "https://shop.example/")

    assert candidate.external_id == "42"
    assert candidate.price == 329.0
    assert candidate.in_stock
    assert candidate.url == "https://shop.example/products/moondrop-blessing-3"
    assert candidate.image_url == "https://cdn.example/b3.jpg"
    assert candidate.vendor == "Moondrop"
    assert candidate.product_type == "IEM"


def test_storefront_candidate_without_stock_or_title():
    sold_out = storefront_product(variants=[{"price": "319.00", "available": False}], images=[])
    candidate = extract_storefront_candidate(sold_out, "https://shop.example")
    assert candidate.price == 319.0
    assert not candidate.in_stock
    assert candidate.image_url is None

    assert extract_storefront_candidate(storefront_product(title="  "), "https://shop.example") is None
    assert extract_storefront_candidate(storefront_product(id=None), "https://shop.example") is None


def test_parse_storefront_products():
    response = {"products": [storefront_product(), storefront_product(id=43, title="")]}
    assert [c.external_id for c in parse_storefront_products(response, "https://shop.example")] == ["42"]
