import sqlite3
import time

import pytest

from catalog_sync.checkpoint import CheckpointStore
from catalog_sync.flush import Flusher
from catalog_sync.models import Candidate, WorkItem
from catalog_sync.pool import AcquisitionPool, PoolConfig
from catalog_sync.reconciler import Reconciler


@pytest.fixture
def seeded(store, products):
    store.upsert("canonical_products", [product.to_row() for product in products], conflict_key=("id",))
    return store


@pytest.fixture
def checkpoints(tmp_path):
    return CheckpointStore(tmp_path / "progress.json")


def fast_config(**kwargs):
    kwargs.setdefault("concurrency", 2)
    return PoolConfig(delay=0.0, jitter=0.0, suspend_interval=0.01, **kwargs)


def work(item_id, query="sennheiser", category="headphone", **kwargs):
    return WorkItem(id=item_id, query=query, retailer_id="shop", category=category, **kwargs)


def hd600(external_id="L1"):
    return Candidate(
        external_id=external_id,
        title="Sennheiser HD600 Open-Back Headphones",
        price=299.0,
        in_stock=True,
        url=f"https://shop.example/{external_id}",
        vendor="Sennheiser",
    )


def all_calls(factory):
    return sorted(call for reader in factory.readers for call in reader.calls)


def test_resume_skips_completed_items(fake_reader_factory, catalog, checkpoints):
    factory = fake_reader_factory({})
    items = [work(str(i)) for i in range(1, 6)]

    with AcquisitionPool(factory, Reconciler(catalog), None, checkpoints, fast_config()) as pool:
        stats = pool.run(items, resume_ids=["1", "3", "5"])

    assert all_calls(factory) == ["2", "4"]
    assert stats.completed == 2
    assert pool.get_stats() == stats
    assert sorted(pool.completed_ids()) == ["1", "2", "3", "4", "5"]
    assert all(reader.closed for reader in factory.readers)


def test_challenged_item_is_not_completed(fake_reader_factory, catalog, checkpoints, challenge):
    factory = fake_reader_factory({"b": challenge})

    with AcquisitionPool(factory, Reconciler(catalog), None, checkpoints, fast_config()) as pool:
        stats = pool.run([work("a"), work("b")])

    assert stats.captchas == 1
    assert stats.errors == 0
    assert stats.completed == 1
    assert checkpoints.load().completed_ids == ["a"]


def test_failed_item_is_counted_and_left_for_next_run(fake_reader_factory, catalog, checkpoints):
    factory = fake_reader_factory({"b": RuntimeError("boom")})

    with AcquisitionPool(factory, Reconciler(catalog), None, checkpoints, fast_config()) as pool:
        stats = pool.run([work("a"), work("b")])

    assert stats.errors == 1
    assert "b" not in checkpoints.load().completed_ids


def test_finished_run_deletes_checkpoint(fake_reader_factory, catalog, checkpoints):
    checkpoints.save(["a"])
    factory = fake_reader_factory({})

    with AcquisitionPool(factory, Reconciler(catalog), None, checkpoints, fast_config()) as pool:
        pool.run([work("a"), work("b")], resume_ids=checkpoints.load().completed_ids)

    assert not checkpoints.path.exists()


def test_past_deadline_claims_nothing(fake_reader_factory, catalog, checkpoints):
    factory = fake_reader_factory({})

    with AcquisitionPool(factory, Reconciler(catalog), None, checkpoints, fast_config()) as pool:
        stats = pool.run([work("a"), work("b")], deadline=time.time() - 1)

    assert all_calls(factory) == []
    assert stats.completed == 0
    assert checkpoints.load().completed_ids == []


def test_auto_match_is_linked_end_to_end(fake_reader_factory, catalog, seeded, checkpoints):
    factory = fake_reader_factory({"a": [hd600()]})

    with AcquisitionPool(factory, Reconciler(catalog), Flusher(seeded), checkpoints, fast_config()) as pool:
        stats = pool.run([work("a")])

    assert stats.auto == 1
    assert seeded.existing_links([("shop", "L1")]) == {("shop", "L1"): "c1"}
    [c1] = [p for p in seeded.canonical_products() if p.id == "c1"]
    assert c1.price == 299.0
    assert c1.best_url == "https://shop.example/L1"


def test_dry_run_writes_nothing(fake_reader_factory, catalog, seeded, checkpoints):
    factory = fake_reader_factory({"a": [hd600()], "b": RuntimeError("boom")})
    config = fast_config(dry_run=True)

    with AcquisitionPool(factory, Reconciler(catalog), Flusher(seeded), checkpoints, config) as pool:
        stats = pool.run([work("a"), work("b")])

    assert stats.auto == 1
    assert seeded.listings() == []
    assert not checkpoints.path.exists()


def test_created_product_is_matchable_by_later_items(fake_reader_factory, catalog, seeded, checkpoints):
    aria = dict(title="Moondrop Aria 2", price=79.0, in_stock=True, vendor="Moondrop")
    factory = fake_reader_factory(
        {"a": [Candidate(external_id="A1", **aria)], "b": [Candidate(external_id="A2", **aria)]}
    )
    items = [work(item_id, query="moondrop", category="iem", create_missing=True) for item_id in ("a", "b")]

    with AcquisitionPool(
        factory, Reconciler(catalog), Flusher(seeded), checkpoints, fast_config(concurrency=1)
    ) as pool:
        stats = pool.run(items)

    assert stats.created == 1
    assert stats.auto == 1
    links = seeded.existing_links([("shop", "A1"), ("shop", "A2")])
    assert links[("shop", "A1")] == links[("shop", "A2")]
    [created] = [p for p in seeded.canonical_products("iem") if p.name == "Moondrop Aria 2"]
    assert created.id == links[("shop", "A1")]
    assert created.source_id == "store:shop:A1"


def test_repeated_challenges_shrink_the_pool(fake_reader_factory, catalog, checkpoints, challenge):
    factory = fake_reader_factory({"a": challenge, "b": challenge, "c": challenge})

    with AcquisitionPool(
        factory, Reconciler(catalog), None, checkpoints, fast_config(concurrency=4)
    ) as pool:
        stats = pool.run([work("a"), work("b"), work("c"), work("d")])

    assert stats.captchas == 3
    assert pool.throttle.reduced
    assert pool.throttle.active_workers == 2
    assert "d" in pool.completed_ids()


def test_run_requires_open_pool(fake_reader_factory, catalog):
    pool = AcquisitionPool(fake_reader_factory({}), Reconciler(catalog), config=fast_config())
    with pytest.raises(RuntimeError):
        pool.run([work("a")])


def test_pool_config_validation():
    with pytest.raises(ValueError):
        PoolConfig(concurrency=0)
    with pytest.raises(ValueError):
        PoolConfig(flush_every=0)


class RecordingCheckpoints(CheckpointStore):
    def __init__(self, path):
        super().__init__(path)
        self.saved = []

    def save(self, completed_ids):
        ids = list(completed_ids)
        self.saved.append(len(ids))
        return super().save(ids)


class RecordingFlusher(Flusher):
    def __init__(self, store):
        super().__init__(store)
        self.sizes = []

    def flush(self, outcomes, checked_at=None):
        self.sizes.append(len(outcomes))
        return super().flush(outcomes, checked_at)


def test_checkpoint_and_flush_cadence(fake_reader_factory, catalog, seeded, tmp_path):
    responses = {str(i): [hd600(f"{i}-{n}") for n in range(4)] for i in range(60)}
    checkpoints = RecordingCheckpoints(tmp_path / "progress.json")
    flusher = RecordingFlusher(seeded)

    with AcquisitionPool(
        fake_reader_factory(responses), Reconciler(catalog), flusher, checkpoints, fast_config(concurrency=1)
    ) as pool:
        stats = pool.run([work(str(i)) for i in range(60)])

    assert stats.completed == 60
    assert checkpoints.saved == [50]
    assert flusher.sizes == [200, 40]
    assert seeded.count("external_listings") == 240
    assert not checkpoints.path.exists()


def test_failed_flush_leaves_items_pending(fake_reader_factory, catalog, seeded, checkpoints, monkeypatch):
    def locked(keys):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(seeded, "existing_links", locked)
    factory = fake_reader_factory({"a": [hd600()], "b": RuntimeError("boom")})

    with AcquisitionPool(
        factory, Reconciler(catalog), Flusher(seeded), checkpoints, fast_config(concurrency=1, flush_every=1)
    ) as pool:
        stats = pool.run([work("a"), work("b")])

    assert stats.write_failures == 1
    assert stats.errors == 1
    assert stats.completed == 0
    assert pool.completed_ids() == []
    assert checkpoints.load().completed_ids == []
