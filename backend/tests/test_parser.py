"""
Tests for Gemini response parsing and product normalization.
"""
import pytest

from chirashi.analysis.parser import (
    coerce_price,
    derive_prices,
    extract_json_block,
    normalize_category,
    parse_products,
)
from chirashi.models import CATEGORIES


# ── Unit Tests: extract_json_block ──────────────────────────────────────

class TestExtractJsonBlock:

    def test_surrounding_prose(self):
        text = 'Here is the result:\n{"products": []}\nThanks.'
        assert extract_json_block(text) == '{"products": []}'

    def test_markdown_fence(self):
        text = '```json\n{"products": [{"a": {"b": 1}}]}\n```'
        assert extract_json_block(text) == '{"products": [{"a": {"b": 1}}]}'

    def test_no_braces(self):
        assert extract_json_block("sorry, I cannot read this flyer") is None

    def test_closing_before_opening(self):
        assert extract_json_block("} nothing {") is None

    def test_empty(self):
        assert extract_json_block("") is None
        assert extract_json_block(None) is None


# ── Unit Tests: price handling ──────────────────────────────────────────

class TestDerivePrices:

    def test_incl_from_excl(self):
        price = derive_prices(198, None)
        assert price.tax_excl == 198
        assert price.tax_incl == 214

    def test_excl_from_incl(self):
        price = derive_prices(None, 214)
        assert price.tax_incl == 214
        assert price.tax_excl == round(214 / 1.08)

    def test_both_present_unchanged(self):
        price = derive_prices(100, 110)
        assert (price.tax_excl, price.tax_incl) == (100, 110)

    @pytest.mark.parametrize("known", [1, 98, 128, 298, 1280, 3980])
    def test_matches_rounded_tax_rate(self, known):
        assert derive_prices(known, None).tax_incl == round(known * 1.08)
        assert derive_prices(None, known).tax_excl == round(known / 1.08)


class TestCoercePrice:

    def test_int(self):
        assert coerce_price(198) == 198

    def test_float_rounds(self):
        assert coerce_price(213.84) == 214

    def test_string_with_comma_and_yen(self):
        assert coerce_price("1,280円") == 1280

    def test_unreadable(self):
        assert coerce_price("お買い得") is None
        assert coerce_price("") is None
        assert coerce_price(None) is None
        assert coerce_price(True) is None

    @pytest.mark.parametrize("value", [1e30, "99999999999999999999999999999", "1e30", 1_000_001])
    def test_absurd_amount_rejected(self, value):
        assert coerce_price(value) is None

    def test_ceiling_inclusive(self):
        assert coerce_price(1_000_000) == 1_000_000


# ── Unit Tests: categories ──────────────────────────────────────────────

class TestNormalizeCategory:

    def test_known_category_kept(self):
        for category in CATEGORIES:
            assert normalize_category(category) == category

    def test_unknown_category_remapped(self):
        assert normalize_category("スイーツ") == "他"

    def test_missing_or_wrong_type(self):
        assert normalize_category(None) == "他"
        assert normalize_category(3) == "他"


# ── Unit Tests: parse_products ──────────────────────────────────────────

class TestParseProducts:

    def test_prose_wrapped_response(self):
        text = (
            'Here is the result:\n'
            '{"products":[{"productName":"キャベツ","price":{"taxExcl":198},'
            '"unit":"1玉","category":"野菜","validFrom":null,"validTo":null}]}\n'
            'Thanks.'
        )
        records = parse_products(text)
        assert len(records) == 1
        record = records[0]
        assert record.product_name == "キャベツ"
        assert record.price.tax_excl == 198
        assert record.price.tax_incl == 214
        assert record.unit == "1玉"
        assert record.category == "野菜"
        assert record.valid_from is None
        assert record.valid_to is None

    def test_unknown_category_record_retained(self):
        text = ('{"products":[{"productName":"プリン","price":{"taxIncl":129},'
                '"unit":"1個","category":"スイーツ"}]}')
        records = parse_products(text)
        assert len(records) == 1
        assert records[0].category == "他"
        assert records[0].product_name == "プリン"
        assert records[0].price.tax_incl == 129

    def test_all_categories_in_closed_set(self):
        text = ('{"products":['
                '{"productName":"a","price":{"taxIncl":1},"category":"肉"},'
                '{"productName":"b","price":{"taxIncl":2},"category":"meat"},'
                '{"productName":"c","price":{"taxIncl":3}}]}')
        records = parse_products(text)
        assert len(records) == 3
        assert all(r.category in CATEGORIES for r in records)

    def test_absurd_price_drops_only_that_record(self):
        text = ('{"products":['
                '{"productName":"a","price":{"taxExcl":1e30}},'
                '{"productName":"c","price":{"taxIncl":"99999999999999999999999999999"}},'
                '{"productName":"b","price":{"taxIncl":198}}]}')
        records = parse_products(text)
        assert [r.product_name for r in records] == ["b"]
        assert records[0].price.tax_excl == 183

    def test_record_without_price_dropped(self):
        text = ('{"products":['
                '{"productName":"読めない","price":{"taxExcl":null,"taxIncl":null}},'
                '{"productName":"価格なし"},'
                '{"productName":"牛乳","price":{"taxIncl":215},"category":"乳製品"}]}')
        records = parse_products(text)
        assert [r.product_name for r in records] == ["牛乳"]

    def test_no_json(self):
        assert parse_products("I could not find any products.") == []

    def test_invalid_json(self):
        assert parse_products('{"products": [ {"productName": "x", }') == []

    def test_missing_products_field(self):
        assert parse_products('{"items": []}') == []

    def test_products_not_a_list(self):
        assert parse_products('{"products": "none"}') == []

    def test_top_level_array_ignored(self):
        # first "{" to last "}" of an array is not an object with products
        assert parse_products('[{"productName":"x","price":{"taxIncl":1}}]') == []

    def test_non_dict_entries_dropped(self):
        text = '{"products": ["キャベツ 198円", {"productName":"卵","price":{"taxIncl":248}}]}'
        records = parse_products(text)
        assert len(records) == 1
        assert records[0].product_name == "卵"

    def test_missing_unit_defaults(self):
        records = parse_products('{"products":[{"productName":"豆腐","price":{"taxExcl":58}}]}')
        assert records[0].unit == "1点"

    def test_dates_passed_through(self):
        text = ('{"products":[{"productName":"鮭","price":{"taxExcl":298},'
                '"category":"魚","validFrom":"2026-02-18","validTo":"2026-02-18"}]}')
        record = parse_products(text)[0]
        assert record.valid_from == "2026-02-18"
        assert record.valid_to == "2026-02-18"

    def test_serializes_with_display_field_names(self):
        record = parse_products('{"products":[{"productName":"卵","price":{"taxIncl":248}}]}')[0]
        data = record.model_dump(by_alias=True)
        assert set(data) == {"productName", "price", "unit", "category", "validFrom", "validTo"}
        assert data["price"] == {"taxExcl": 230, "taxIncl": 248}
