"""
Placeholder normalization.

Query templates embedded in generated artifacts contain {{Name}} tokens that
stand in for runtime values. Before a template can be priced by the oracle,
every token is replaced with a fixed, deterministic sample value.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

TOKEN_PATTERN = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")


@dataclass(frozen=True)
class PlaceholderTable:
    """Immutable mapping of token name to sample value."""
    values: Mapping[str, str]

    def __post_init__(self):
        """Freeze the mapping and validate names and values."""
        frozen = {}
        for name, value in dict(self.values).items():
            if not isinstance(name, str) or not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
                raise ValueError(f"Invalid placeholder name: {name!r}")
            if not isinstance(value, str):
                raise ValueError(f"Sample value for '{name}' must be a string")
            # A value containing a token would make normalization non-idempotent
            if TOKEN_PATTERN.search(value):
                raise ValueError(f"Sample value for '{name}' contains a placeholder token")
            frozen[name] = value
        object.__setattr__(self, "values", MappingProxyType(frozen))

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str):
        return self.values.get(name)

    def merged(self, overrides: Mapping[str, str]) -> "PlaceholderTable":
        """Return a new table with overrides applied on top of this one."""
        combined = dict(self.values)
        combined.update(overrides)
        return PlaceholderTable(combined)


# Sample values accepted by the cost service for the tokens used by the generator
DEFAULT_PLACEHOLDERS = PlaceholderTable({
    "ProductId": "gid://shopify/Product/1",
    "VariantId": "gid://shopify/ProductVariant/1",
    "CustomerId": "gid://shopify/Customer/1",
    "OrderId": "gid://shopify/Order/1",
    "CollectionId": "gid://shopify/Collection/1",
    "LocationId": "gid://shopify/Location/1",
    "InventoryItemId": "gid://shopify/InventoryItem/1",
    "Cursor": "eyJsYXN0X2lkIjoxfQ==",
    "First": "10",
    "Last": "10",
    "Limit": "10",
    "Query": "status:active",
    "Handle": "sample-handle",
    "Email": "sample@example.com",
    "Date": "2024-01-01T00:00:00Z",
})


@dataclass(frozen=True)
class NormalizationResult:
    """Substituted text plus the names of tokens left in place."""
    text: str
    unresolved: Tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.unresolved


def normalize(template: str, table: PlaceholderTable) -> NormalizationResult:
    """Replace every recognized {{Name}} span with its sample value.

    Unrecognized spans are left untouched and reported in
    ``NormalizationResult.unresolved``. No RNG and no state, so the same
    template always yields byte-identical output.

    Args:
        template: Query template text
        table: Token table to substitute from

    Returns:
        NormalizationResult with the substituted text
    """
    unresolved = []

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = table.get(name)
        if value is None:
            if name not in unresolved:
                unresolved.append(name)
            return match.group(0)
        return value

    text = TOKEN_PATTERN.sub(_substitute, template)
    return NormalizationResult(text=text, unresolved=tuple(unresolved))
