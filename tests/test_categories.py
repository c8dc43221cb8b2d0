"""Tests for category name decoding and derived category fields."""

import pytest

from categories import (
    UNCATEGORIZED, category_code, category_key, decode_category_name, parent_category,
)


class TestDecodeCategoryName:
    def test_decodes_html_entity(self):
        assert decode_category_name("Wound &amp; Care") == "Wound & Care"

    def test_decoding_is_idempotent(self):
        once = decode_category_name("Wound &amp; Care")
        assert decode_category_name(once) == once

    @pytest.mark.parametrize("raw, expected", [
        ("Incontinence \\u0026 Skin", "Incontinence & Skin"),
        ("Gen Nsg&gt;Wound Care", "Gen Nsg>Wound Care"),
        ("Gen Nsg\\u003eNutrition", "Gen Nsg>Nutrition"),
        ("Urology &#x2F; Ostomy", "Urology / Ostomy"),
        ("Chef&#39;s Choice", "Chef's Choice"),
        ("&quot;Bulk&quot; Items", '"Bulk" Items'),
        ("Wound &amp;amp; Care", "Wound & Care"),
    ])
    def test_decodes_escapes(self, raw, expected):
        assert decode_category_name(raw) == expected

    def test_plain_name_unchanged(self):
        assert decode_category_name("Personal Care") == "Personal Care"

    def test_none_stays_none(self):
        assert decode_category_name(None) is None


class TestCategoryKey:
    def test_null_is_uncategorized(self):
        assert category_key(None) == UNCATEGORIZED

    def test_blank_is_uncategorized(self):
        assert category_key("   ") == UNCATEGORIZED

    def test_decodes_and_strips(self):
        assert category_key("  Wound &amp; Care ") == "Wound & Care"


class TestDerivedFields:
    def test_parent_from_separator(self):
        assert parent_category("Gen Nsg>Wound Care") == "Gen Nsg"

    def test_no_parent_without_separator(self):
        assert parent_category("Wound Care") is None

    def test_code_from_first_two_words(self):
        assert category_code("Wound Care Supplies") == "WOUCAR"

    def test_code_skips_symbols(self):
        assert category_code("Gen Nsg>Urology & Ostomy") == "GENNSG"
