"""Tests for the deal score."""

from decimal import Decimal

from listing_tracker.schemas import ItemAttributes, Listing
from listing_tracker.scoring import calculate_deal_score, effective_floor, rarity_multiplier, score_listing

D = Decimal


def test_serial_one_against_floor_only():
    assert calculate_deal_score(D("100"), D("100"), None, serial=1) == D("90.0")


def test_outlier_floor_is_replaced_by_average():
    assert effective_floor(D("400"), D("100")) == D("150")
    assert calculate_deal_score(D("50"), D("400"), D("100"), serial=500) == D("66.7")


def test_lower_of_floor_and_average_is_used():
    assert effective_floor(D("120"), D("100")) == D("100")
    assert effective_floor(D("80"), D("100")) == D("80")


def test_missing_floor_falls_back_to_average():
    assert effective_floor(None, D("40")) == D("40")
    assert calculate_deal_score(D("30"), None, D("40"), serial=500) == D("25.0")


def test_no_reference_scores_zero():
    assert calculate_deal_score(D("10"), None, None, serial=1) == D("0")
    assert calculate_deal_score(D("10"), D("0"), None) == D("0")


def test_non_positive_price_scores_zero():
    assert calculate_deal_score(D("0"), D("100"), None) == D("0")
    assert calculate_deal_score(None, D("100"), None) == D("0")


def test_overpriced_listing_is_negative():
    assert calculate_deal_score(D("150"), D("100"), None, serial=5000) == D("-50.0")


def test_multiplier_priority():
    # serial 1 beats jersey match
    assert rarity_multiplier(1, jersey_number=1) == D("10")
    assert rarity_multiplier(12, jersey_number=12, max_mint=12) == D("5")
    assert rarity_multiplier(99, max_mint=99) == D("2.5")
    assert rarity_multiplier(7) == D("3")
    assert rarity_multiplier(100) == D("1.5")
    assert rarity_multiplier(101) == D("1")
    assert rarity_multiplier(None) == D("1")


def test_score_listing_reads_attributes():
    listing = Listing(
        item_id="1",
        price=D("20"),
        floor_at_listing=D("10"),
        attributes=ItemAttributes(serial_number=7),
    )
    # estimated value 30
    assert score_listing(listing) == D("33.3")


def test_score_is_deterministic():
    args = (D("123.45"), D("200"), D("180"))
    assert calculate_deal_score(*args, serial=42) == calculate_deal_score(*args, serial=42)
