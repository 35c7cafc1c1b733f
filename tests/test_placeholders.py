"""
Unit tests for placeholder normalization.

Tests substitution, unresolved token reporting and determinism.
"""

import pytest

from query_cost_sync.core.placeholders import (
    DEFAULT_PLACEHOLDERS,
    NormalizationResult,
    PlaceholderTable,
    normalize,
)


class TestPlaceholderTable:
    """Test the immutable token table."""

    def test_table_is_immutable(self):
        """Mapping cannot be mutated after construction."""
        table = PlaceholderTable({"ProductId": "1"})
        with pytest.raises(TypeError):
            table.values["ProductId"] = "2"

    def test_source_dict_changes_do_not_leak(self):
        """Mutating the source dict leaves the table untouched."""
        source = {"ProductId": "1"}
        table = PlaceholderTable(source)
        source["ProductId"] = "2"
        assert table.get("ProductId") == "1"

    def test_rejects_value_containing_token(self):
        """Sample values must not introduce new tokens."""
        with pytest.raises(ValueError, match="contains a placeholder token"):
            PlaceholderTable({"A": "{{B}}"})

    def test_rejects_invalid_name(self):
        """Token names must be identifiers."""
        with pytest.raises(ValueError, match="Invalid placeholder name"):
            PlaceholderTable({"not valid": "x"})

    def test_rejects_non_string_value(self):
        """Sample values must be strings."""
        with pytest.raises(ValueError, match="must be a string"):
            PlaceholderTable({"First": 10})

    def test_merged_returns_new_table(self):
        """Overrides produce a new table and keep the original intact."""
        base = PlaceholderTable({"A": "1", "B": "2"})
        merged = base.merged({"B": "3", "C": "4"})
        assert merged.get("B") == "3"
        assert merged.get("C") == "4"
        assert base.get("B") == "2"
        assert "C" not in base


class TestNormalize:
    """Test template normalization."""

    def test_replaces_recognized_tokens(self):
        """Every occurrence of a known token is replaced."""
        table = PlaceholderTable({"ProductId": "gid://shopify/Product/1"})
        result = normalize('product(id: "{{ProductId}}") { id } # {{ProductId}}', table)
        assert result.text == 'product(id: "gid://shopify/Product/1") { id } # gid://shopify/Product/1'
        assert result.is_complete

    def test_unresolved_tokens_are_left_and_reported(self):
        """Unknown tokens stay verbatim and are surfaced, never blanked."""
        table = PlaceholderTable({"First": "10"})
        result = normalize("products(first: {{First}}, after: {{Cursor}}) {{Cursor}}", table)
        assert result.text == "products(first: 10, after: {{Cursor}}) {{Cursor}}"
        assert result.unresolved == ("Cursor",)
        assert not result.is_complete

    def test_no_partial_token_matches(self):
        """Only exact {{Name}} spans are tokens."""
        table = PlaceholderTable({"Id": "1"})
        template = "{Id} {{ Id }} {{Id-x}} {{IdX}}"
        result = normalize(template, table)
        assert result.text == template
        assert result.unresolved == ("IdX",)

    def test_graphql_braces_untouched(self):
        """Ordinary selection-set braces are not altered."""
        table = PlaceholderTable({"First": "5"})
        result = normalize("{ products(first: {{First}}) { edges { node { id } } } }", table)
        assert result.text == "{ products(first: 5) { edges { node { id } } } }"

    def test_idempotent_for_recognized_tokens(self):
        """Normalizing twice equals normalizing once."""
        template = '{"query": "{ order(id: \\"{{OrderId}}\\") { id } }", "variables": {"first": {{First}}}}'
        once = normalize(template, DEFAULT_PLACEHOLDERS)
        twice = normalize(once.text, DEFAULT_PLACEHOLDERS)
        assert once.is_complete
        assert twice == once

    def test_deterministic_output(self):
        """Repeated runs yield byte-identical output."""
        template = "{{CustomerId}} {{Email}} {{Date}}"
        results = {normalize(template, DEFAULT_PLACEHOLDERS).text for _ in range(5)}
        assert len(results) == 1

    def test_alternate_table_without_shared_state(self):
        """Tests can pass their own table; defaults are unaffected."""
        custom = PlaceholderTable({"ProductId": "42"})
        assert normalize("{{ProductId}}", custom).text == "42"
        assert normalize("{{ProductId}}", DEFAULT_PLACEHOLDERS).text == "gid://shopify/Product/1"

    def test_template_without_tokens(self):
        """A template without tokens passes through unchanged."""
        assert normalize("{ shop { name } }", DEFAULT_PLACEHOLDERS) == NormalizationResult(
            text="{ shop { name } }"
        )
