import pytest

from catalog_sync.normalizer import bigrams, compact, listing_key, normalize, remove_brand, tokens

TITLES = [
    "Sennheiser HD 600 Open-Back Headphones (Demo)",
    "Moondrop Blessing 3 In-Ear Monitors",
    "in official ear monitor",
    "Beyerdynamic DT 770 PRO Édition 2024",
    "FiiO FH9 — IEM / Earphones",
    "Genuine Audio-Technica ATH-M50x Free Shipping",
    "   ",
    "Final E3000 (Open Box) earphone",
]


@pytest.mark.parametrize("title", TITLES)
def test_normalize_is_idempotent(title):
    once = normalize(title)
    assert normalize(once) == once


def test_normalize_strips_noise_and_suffixes():
    assert normalize("Sennheiser HD 600 Open-Back Headphones (Demo)") == "sennheiser hd 600"
    assert normalize("Genuine Audio-Technica ATH-M50x Free Shipping") == "audio technica ath m50x"


def test_normalize_keeps_model_tokens():
    assert normalize("Moondrop Blessing 3 Pro 2024") == "moondrop blessing 3 pro 2024"
    assert normalize("Sennheiser HD600") == "sennheiser hd600"
    assert normalize("Hifiman Edition XS MK2") == "hifiman edition xs mk2"


def test_normalize_folds_accents():
    assert normalize("Beyerdynamic DT 770 PRO Édition") == "beyerdynamic dt 770 pro edition"


def test_normalize_empty_values():
    assert normalize("") == ""
    assert normalize(None) == ""
    assert normalize("(demo)") == ""


def test_listing_key_matches_normalize():
    assert listing_key("Focal Clear MG Headphones") == normalize("Focal Clear MG")


def test_derived_forms():
    key = normalize("Sennheiser HD 600")
    assert remove_brand(key) == "hd 600"
    assert remove_brand("hd600") == "hd600"
    assert compact(key) == "sennheiserhd600"
    assert tokens(key) == frozenset({"sennheiser", "hd", "600"})
    assert bigrams("abc") == frozenset({"ab", "bc"})
    assert bigrams("a") == frozenset()
