import pytest

from catalog_sync.errors import StoreWriteError
from catalog_sync.models import CanonicalProduct, ExternalListing, ReviewTask

LISTING_KEY = ("retailer_id", "external_id")


def add_products(store, products):
    store.upsert("canonical_products", [product.to_row() for product in products], conflict_key=("id",))


def listing(external_id, product_id=None, price=None, in_stock=False, retailer_id="shop"):
    return ExternalListing(
        retailer_id=retailer_id,
        external_id=external_id,
        title=f"Listing {external_id}",
        canonical_product_id=product_id,
        price=price,
        in_stock=in_stock,
        url=f"https://shop.example/{external_id}",
        image_url=f"https://cdn.example/{external_id}.jpg",
    ).to_row()


def test_upsert_and_select(store, products):
    add_products(store, products)

    assert store.count("canonical_products") == 5
    assert [p.id for p in store.canonical_products("iem")] == ["i1", "i2"]
    rows = store.select("canonical_products", {"id": ["c1", "c3"]})
    assert [row["name"] for row in rows] == ["Sennheiser HD 600", "Focal Clear MG"]
    assert store.select("canonical_products", {"id": []}) == []
    assert len(store.select("canonical_products", {"source_id": None})) == 5


def test_upsert_updates_existing_rows(store, products):
    add_products(store, products)
    renamed = CanonicalProduct(id="c1", name="Sennheiser HD 600 (2020)", category="headphone", brand="Sennheiser")
    add_products(store, [renamed])

    [row] = store.select("canonical_products", {"id": "c1"})
    assert row["name"] == "Sennheiser HD 600 (2020)"
    assert store.count("canonical_products") == 5


def test_upsert_ignore_duplicates_keeps_first_row(store, products):
    add_products(store, products)
    changed = CanonicalProduct(id="c1", name="Changed", category="headphone").to_row()
    store.upsert("canonical_products", [changed], conflict_key=("id",), ignore_duplicates=True)
    [row] = store.select("canonical_products", {"id": "c1"})
    assert row["name"] == "Sennheiser HD 600"


def test_upsert_writes_more_than_one_batch(store):
    products = [CanonicalProduct(id=f"p{i:03d}", name=f"Product {i}", category="iem") for i in range(250)]
    assert store.upsert("canonical_products", [p.to_row() for p in products], conflict_key=("id",)) == 250
    assert store.count("canonical_products") == 250


def test_invalid_columns_and_ordering_are_rejected(store):
    with pytest.raises(ValueError):
        store.upsert("canonical_products", [{"id": "x", "nope": 1}], conflict_key=("id",))
    with pytest.raises(ValueError):
        store.select("canonical_products", {"nope": 1})
    with pytest.raises(ValueError):
        store.select("canonical_products", order_by="name; DROP TABLE canonical_products")
    with pytest.raises(ValueError):
        store.select("unknown_table")


def test_failed_write_raises_store_error(store):
    row = listing("1")
    row["title"] = None
    with pytest.raises(StoreWriteError):
        store.upsert("external_listings", [row], conflict_key=LISTING_KEY)


def test_existing_links_only_reports_stored_rows(store, products):
    add_products(store, products)
    store.upsert("external_listings", [listing("1", "c1"), listing("2")], conflict_key=LISTING_KEY)

    links = store.existing_links([("shop", "1"), ("shop", "2"), ("shop", "3"), ("other", "1")])

    assert links == {("shop", "1"): "c1", ("shop", "2"): None}


def test_denormalize_prefers_in_stock_then_price(store, products):
    add_products(store, products)
    store.upsert(
        "external_listings",
        [
            listing("1", "c1", price=100.0, in_stock=False),
            listing("2", "c1", price=300.0, in_stock=True),
            listing("3", "c1", price=250.0, in_stock=True),
            listing("4", "c2"),
        ],
        conflict_key=LISTING_KEY,
    )

    assert store.denormalize_best_offers(["c1", "c2"]) == 1

    by_id = {product.id: product for product in store.canonical_products()}
    assert by_id["c1"].price == 250.0
    assert by_id["c1"].in_stock
    assert by_id["c1"].best_url == "https://shop.example/3"
    assert by_id["c1"].image_url == "https://cdn.example/3.jpg"
    assert by_id["c2"].price is None


def test_review_tasks_are_idempotent(store):
    task = ReviewTask(task_type="offer_link", source_listing_id="shop:1", priority=80, reason="pending")
    store.add_review_tasks([task])
    store.add_review_tasks([task])

    [stored] = store.review_tasks()
    assert stored.source_listing_id == "shop:1"
    assert stored.status == "open"


def test_review_tasks_ordered_by_priority(store):
    store.add_review_tasks(
        [
            ReviewTask(task_type="offer_link", source_listing_id="shop:1", priority=70, reason="low"),
            ReviewTask(task_type="offer_link", source_listing_id="shop:2", priority=95, reason="high"),
        ]
    )
    assert [task.priority for task in store.review_tasks()] == [95, 70]
    assert len(store.review_tasks(limit=1)) == 1


def test_accepting_offer_link_links_listing(store, products):
    add_products(store, products)
    store.upsert("external_listings", [listing("1")], conflict_key=LISTING_KEY)
    store.add_review_tasks(
        [ReviewTask(task_type="offer_link", source_listing_id="shop:1", priority=80, reason="p", candidate_id="c1")]
    )
    [task] = store.review_tasks()

    resolved = store.resolve_review_task(task.id, accept=True)

    assert resolved.status == "resolved"
    assert store.existing_links([("shop", "1")]) == {("shop", "1"): "c1"}
    assert store.review_tasks() == []
    [closed] = store.review_tasks(status="resolved")
    assert closed.id == task.id


def test_dismissing_leaves_listing_alone(store, products):
    add_products(store, products)
    store.upsert("external_listings", [listing("1")], conflict_key=LISTING_KEY)
    store.add_review_tasks(
        [ReviewTask(task_type="offer_link", source_listing_id="shop:1", priority=80, reason="p", candidate_id="c1")]
    )
    [task] = store.review_tasks()
    store.resolve_review_task(task.id, accept=False)
    assert store.existing_links([("shop", "1")]) == {("shop", "1"): None}
    assert store.resolve_review_task(9999) is None
