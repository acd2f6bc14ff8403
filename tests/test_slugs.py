"""Tests for slug normalization and repair."""
import pytest

from pipeline_core.tenant_management.slugs import (
    FALLBACK_PREFIX,
    MAX_LABEL_LENGTH,
    is_valid_slug,
    make_suffix,
    normalize_slug,
    repair_slug,
    slugify,
    to_base36,
)


def test_valid_slug_grammar():
    assert is_valid_slug("acme-1234")
    assert is_valid_slug("a")
    assert is_valid_slug("a" * 63)

    assert not is_valid_slug("")
    assert not is_valid_slug(None)
    assert not is_valid_slug("-acme")
    assert not is_valid_slug("acme-")
    assert not is_valid_slug("Acme")
    assert not is_valid_slug("acme_1")
    assert not is_valid_slug("a" * 64)


def test_slugify_strips_diacritics_and_collapses_separators():
    assert slugify("  Café  Déjà_Vu!! ") == "cafe-deja-vu"
    assert slugify("A -- B") == "a-b"
    assert slugify("한글상호") == ""


def test_normalize_slug_joins_name_and_suffix():
    assert normalize_slug("Acme Bakery", "1234") == "acme-bakery-1234"


def test_normalize_slug_falls_back_when_name_is_empty():
    assert normalize_slug("", "ab12") == f"{FALLBACK_PREFIX}-ab12"
    assert normalize_slug("한글상호", "ab12") == f"{FALLBACK_PREFIX}-ab12"


def test_normalize_slug_never_exceeds_label_length():
    slug = normalize_slug("x" * 200, "9z9z")
    assert len(slug) <= MAX_LABEL_LENGTH
    assert slug.endswith("-9z9z")
    assert is_valid_slug(slug)


def test_normalize_slug_trims_trailing_hyphen_after_truncation():
    name = "a" * 57 + " b"
    slug = normalize_slug(name, "1234")
    assert is_valid_slug(slug)
    assert "--" not in slug


def test_make_suffix_uses_last_id_alnums():
    assert make_suffix("rwz_lx2k9a_AbCd") == "abcd"
    assert make_suffix("r-1") == "r1"


def test_make_suffix_without_id_uses_time():
    assert make_suffix(None, now=1.0) == to_base36(1000)[-4:]


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_repair_slug():
    assert repair_slug("Acme_Bakery") == "acme-bakery"
    assert repair_slug("--acme--") == "acme"
    assert repair_slug("!!!") is None


NAMES = [
    "",
    None,
    "   ",
    "\u00a0\u2003\u3000\t\n",
    "Acme\u2003Bakery\u00a0& Sons",
    "Cafe\u0301 Ole\u0301",
    "\u0301\u0308\u0327",
    "!!!---???",
    "___",
    "- Acme -",
    "Ünïcödé Çàfé",
    "東京ラーメン",
    "Москва Пицца",
    "ＦＵＬＬＷＩＤＴＨ　Ｎａｍｅ",
    "ﬁne ﬂowers ①②",
    "Straße",
    "\U0001f355 Pizza \U0001f355",
    "a" * 200,
    "ab-" * 70,
    "word " * 50,
    "x" * 61 + "-" + "y",
]

SUFFIXES = [
    "0001",
    "",
    "!!!",
    "-",
    "ab-",
    "-ab",
    "日本",
    "A_B",
    "z" * 70,
    "a" * 60 + "-b",
]


@pytest.mark.parametrize("suffix", SUFFIXES)
@pytest.mark.parametrize("name", NAMES)
def test_normalize_slug_always_yields_a_dns_label(name, suffix):
    slug = normalize_slug(name, suffix)

    assert is_valid_slug(slug), repr(slug)
    assert len(slug) <= MAX_LABEL_LENGTH


@pytest.mark.parametrize("name", NAMES)
def test_repair_slug_returns_a_label_or_nothing(name):
    repaired = repair_slug(name)

    assert repaired is None or is_valid_slug(repaired)
