"""Tests for lexical and semantic category matching."""

import pytest

from llm.client import GenerationError
from llm.semantic import find_semantic_matches
from market.pipelines.category_matching import (
    is_lexical_match,
    match_categories,
    match_categories_with_semantics,
)

from tests.conftest import FakeGenerator


class TestLexicalRules:

    def test_exact_match_ignores_case(self):
        assert is_lexical_match("LAPTOPS", "laptops")

    def test_generated_contained_in_catalog(self):
        assert is_lexical_match("Laptop", "Laptops")

    def test_catalog_contained_in_generated(self):
        assert is_lexical_match("Gaming Laptops", "Laptops")

    def test_short_containment_ignored(self):
        # "TV" is only two characters
        assert not is_lexical_match("TV", "TV Stands Deluxe")

    def test_shared_word(self):
        assert is_lexical_match("Hair Accessories", "Tech Accessories")

    def test_short_shared_word_ignored(self):
        assert not is_lexical_match("Pc Games", "Pc Repairs")

    def test_word_containment_needs_four_letters(self):
        assert is_lexical_match("Phone Cases", "Smartphones")
        assert not is_lexical_match("Art Kits", "Party Decor")

    def test_unrelated(self):
        assert not is_lexical_match("Laptop", "Electronics")


class TestMatchCategories:

    def test_singular_request_matches_plural_catalog_entry(self):
        assert match_categories(["Laptop"], ["Electronics", "Laptops"]) == ["Laptops"]

    @pytest.mark.parametrize("short,long", [
        ("Book", "Books"),
        ("Shoe", "Shoes & Sandals"),
        ("Snack", "Snacks"),
    ])
    def test_containment_is_symmetric(self, short, long):
        assert long in match_categories([short], [long])
        assert short in match_categories([long], [short])

    def test_case_invariance(self):
        catalog = ["Mobile Phones", "Laptops", "Books"]
        lower = match_categories(["mobile phone"], [c.lower() for c in catalog])
        upper = match_categories(["MOBILE PHONE"], [c.upper() for c in catalog])
        assert [c.lower() for c in lower] == [c.lower() for c in upper] == ["mobile phones"]

    def test_no_duplicates_when_many_rules_fire(self):
        generated = ["Laptops", "Laptop", "Gaming Laptops", "laptops"]
        matched = match_categories(generated, ["Laptops", "Gaming Laptops"])
        assert matched == ["Laptops", "Gaming Laptops"]
        assert len(matched) == len(set(matched))

    def test_duplicate_catalog_entries_collapse(self):
        assert match_categories(["Books"], ["Books", "Books"]) == ["Books"]

    def test_empty_inputs(self):
        assert match_categories([], ["Books"]) == []
        assert match_categories(["Books"], []) == []


class TestSemanticMatches:

    async def test_filters_hallucinated_entries(self):
        generator = FakeGenerator('["Computing Equipment", "Quantum Laptops", "Tech Gadgets"]')
        matches = await find_semantic_matches(
            ["Laptops"],
            ["Computing Equipment", "Tech Gadgets", "Books"],
            generator,
        )
        assert matches == ["Computing Equipment", "Tech Gadgets"]

    async def test_membership_is_literal(self):
        generator = FakeGenerator('["computing equipment"]')
        matches = await find_semantic_matches(["Laptops"], ["Computing Equipment"], generator)
        assert matches == []

    async def test_capped_at_three(self):
        catalog = ["A1", "B2", "C3", "D4"]
        generator = FakeGenerator('["A1", "B2", "C3", "D4"]')
        assert await find_semantic_matches(["Z"], catalog, generator) == ["A1", "B2", "C3"]

    async def test_empty_lists_skip_the_call(self):
        generator = FakeGenerator('["Books"]')
        assert await find_semantic_matches([], ["Books"], generator) == []
        assert await find_semantic_matches(["Books"], [], generator) == []
        assert generator.prompts == []

    async def test_failure_contributes_nothing(self):
        generator = FakeGenerator(GenerationError("down"))
        assert await find_semantic_matches(["Laptops"], ["Books"], generator) == []

    async def test_unparsable_output_contributes_nothing(self):
        generator = FakeGenerator('{"matches": ["Books"]}')
        assert await find_semantic_matches(["Laptops"], ["Books"], generator) == []


class TestCombinedMatching:

    async def test_lexical_first_then_new_semantic(self):
        generator = FakeGenerator('["Laptops", "Computing Equipment"]')
        matched = await match_categories_with_semantics(
            ["Laptop"],
            ["Electronics", "Laptops", "Computing Equipment"],
            generator,
        )
        assert matched == ["Laptops", "Computing Equipment"]

    async def test_semantic_failure_keeps_lexical(self):
        generator = FakeGenerator(GenerationError("timeout"))
        matched = await match_categories_with_semantics(
            ["Laptop"], ["Electronics", "Laptops"], generator
        )
        assert matched == ["Laptops"]

    async def test_no_generator_is_lexical_only(self):
        matched = await match_categories_with_semantics(["Laptop"], ["Electronics", "Laptops"])
        assert matched == ["Laptops"]
