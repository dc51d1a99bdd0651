"""Tests for contact identity normalization."""

import pytest

from app.core.identity import is_group_contact, normalize_contact_id


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("081234567890", "6281234567890"),
        ("81234567890", "6281234567890"),
        ("6281234567890", "6281234567890"),
        ("+62 812-3456-7890", "6281234567890"),
        ("0812 3456 7890", "6281234567890"),
        ("6281234567890@s.whatsapp.net", "6281234567890"),
        ("6281234567890:12@s.whatsapp.net", "6281234567890"),
        ("6281234567890@c.us", "6281234567890"),
        ("120363025246125486@g.us", "120363025246125486"),
        ("6281234567890-1612345678@g.us", "6281234567890-1612345678"),
    ],
)
def test_normalize_contact_id(raw, expected):
    assert normalize_contact_id(raw) == expected


def test_local_and_international_forms_converge():
    forms = ["081234567890", "81234567890", "+6281234567890", "6281234567890@s.whatsapp.net"]
    assert len({normalize_contact_id(f) for f in forms}) == 1


def test_unmatched_prefix_is_left_unchanged():
    assert normalize_contact_id("+44 20 7946 0958") == "442079460958"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_input_yields_empty_string(raw):
    assert normalize_contact_id(raw) == ""


def test_input_without_digits_is_returned_stripped():
    assert normalize_contact_id("  support  ") == "support"


@pytest.mark.parametrize(
    "raw", ["081234567890", "6281234567890@s.whatsapp.net", "120363@g.us", "support"]
)
def test_normalization_is_idempotent(raw):
    once = normalize_contact_id(raw)
    assert normalize_contact_id(once) == once


def test_custom_country_code():
    assert normalize_contact_id("0612345678", country_code="31", subscriber_prefix="6") == "31612345678"


def test_is_group_contact():
    assert is_group_contact("120363025246125486@g.us")
    assert not is_group_contact("6281234567890@s.whatsapp.net")
    assert not is_group_contact(None)
