"""
Tests for phone number normalization.
"""

from __future__ import annotations

from app.application.utils.phone import CONTACT_SUFFIX, normalize_group_id, normalize_phone


SAMPLES = [
    "22997123456",
    "+229 97 12 34 56",
    "(229) 97-12-34-56",
    "22997123456@c.us",
    "",
    "abc",
]


def test_strips_formatting_and_appends_suffix():
    assert normalize_phone("+229 97-12-34-56") == "22997123456@c.us"


def test_canonical_address_is_unchanged():
    assert normalize_phone("22997123456@c.us") == "22997123456@c.us"


def test_normalize_is_idempotent_and_always_suffixed():
    for phone in SAMPLES:
        once = normalize_phone(phone)
        assert normalize_phone(once) == once
        assert once.endswith(CONTACT_SUFFIX)


def test_group_ids_use_group_suffix():
    assert normalize_group_id("120363041234567890") == "120363041234567890@g.us"
    assert normalize_group_id("120363041234567890@g.us") == "120363041234567890@g.us"


def test_legacy_group_ids_keep_their_hyphen():
    assert normalize_group_id("22997123456-1617283940") == "22997123456-1617283940@g.us"
    assert normalize_group_id(" 22997123456-1617283940 ") == "22997123456-1617283940@g.us"
