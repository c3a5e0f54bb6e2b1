import pytest

from catalog_sync.guards import (
    CategoryDetector,
    JunkFilter,
    JunkRule,
    is_allowed_department,
    is_likely_isbn,
    is_microphone_junk,
)
from catalog_sync.models import Candidate


@pytest.fixture
def detector():
    return CategoryDetector()


@pytest.mark.parametrize(
    "external_id,expected",
    [("0306406152", True), ("030640615X", True), ("9780306406157", True), ("B0ABCDEFGH", False), ("12345", False)],
)
def test_isbn_detection(external_id, expected):
    assert is_likely_isbn(external_id) is expected


def test_departments():
    assert is_allowed_department(None)
    assert is_allowed_department("Headphones")
    assert is_allowed_department(" Electronics ")
    assert not is_allowed_department("Books")


@pytest.mark.parametrize(
    "title,category,reason",
    [
        ("Test Product", "iem", "placeholder_title"),
        ("AB", "iem", "too_short"),
        ("Sennheiser HD 600 replica", "headphone", "marketplace_noise"),
        ("Rode PSA1 Boom Arm", "microphone", "not_a_microphone"),
        ("Sennheiser HD 600", "headphone", None),
        ("Rode PSA1 Boom Arm", "headphone", None),
    ],
)
def test_junk_filter_reasons(title, category, reason):
    assert JunkFilter().reject_reason(Candidate(external_id="x1", title=title), category) == reason


def test_junk_filter_checks_ids_and_departments():
    junk = JunkFilter()
    assert junk.reject_reason(Candidate(external_id="0306406152", title="Sennheiser HD 600"), "headphone") == "isbn_id"
    book = Candidate(external_id="B0ABCDEFGH", title="Sennheiser HD 600", department="Books")
    assert junk.reject_reason(book, "headphone") == "disallowed_department"


def test_junk_filter_accepts_custom_rules():
    junk = JunkFilter([JunkRule("no_refurb", lambda c, _: "refurbished" in c.title.lower())])
    assert junk.is_junk(Candidate(external_id="1", title="HD 600 Refurbished"), "headphone")
    assert not junk.is_junk(Candidate(external_id="2", title="Test Product"), "headphone")


def test_microphone_guard_wins_over_junk_indicators():
    assert is_microphone_junk("Rode PSA1 Boom Arm")
    assert not is_microphone_junk("Shure SM7B Dynamic Microphone")
    assert not is_microphone_junk("Audio-Technica AT2020 Condenser Microphone with Boom Arm")


@pytest.mark.parametrize(
    "title,brand,category,expected",
    [
        ("Sennheiser HD 600", "Sennheiser", "iem", "headphone"),
        ("Sennheiser IE 600", "Sennheiser", "headphone", "iem"),
        ("Sennheiser HD 600", "Sennheiser", "headphone", None),
        ("ZMF Verite Closed", None, "iem", "headphone"),
        ("STAX SR-003MK2", "Stax", "iem", None),
        ("Moondrop Blessing 3 In-Ear Monitor", None, "headphone", "iem"),
        ("Tripowin Zonie 16 Core Cable", "Tripowin", "cable", "iem_cable"),
        ("Upgrade Cable for HD650", None, "cable", "hp_cable"),
        ("Topping DX5 II DAC/Amp", "Topping", "amp", "dac"),
        ("Topping L50 Headphone Amplifier", "Topping", "amp", None),
        ("iFi GO pod", "iFi", "iem", "dac"),
        ("iFi GO pod Ear Loops", "iFi", "iem", None),
        ("AudioQuest Rocket 11 Speaker Cable", None, "speaker", "cable"),
        ("KEF LS50 Wireless II", "KEF", "speaker", None),
        ("Technics SU-G700 Integrated Amplifier", "Technics", "dap", "amp"),
    ],
)
def test_category_detection(detector, title, brand, category, expected):
    assert detector.detect(title, brand, category) == expected
