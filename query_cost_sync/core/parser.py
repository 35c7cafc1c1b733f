"""
Artifact parsing.

Generated integration artifacts embed their query payload in an
``exit('...')`` wrapper and declare their cost through a named accessor,
e.g. ``public function getQueryCost(): int { return 68; }`` or
``procedure GetExpectedCost(): Integer begin exit(68); end;``. Both are located
positionally with two independent matchers so that a missing payload and a
missing cost are reported separately.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

from ..storage.models import CostQuery
from .errors import ExtractionError

DEFAULT_COST_ACCESSOR = "getQueryCost"

_PAYLOAD_PATTERN = re.compile(
    # Single-quoted bodies may also escape the quote by doubling it
    r"""\bexit\(\s*(?:'(?P<single>(?:''|\\.|[^'\\])*)'|"(?P<double>(?:\\.|[^"\\])*)")\s*\)""",
    re.DOTALL,
)

# A bare query such as "{ shop { name } }" opens with a brace but not a key
_JSON_OBJECT_START = re.compile(r'\s*\{\s*"')


@dataclass(frozen=True)
class PayloadMatch:
    """Unescaped payload literal and its span in the artifact text."""
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class CostMatch:
    """Declared cost integer and the span of its digits."""
    value: int
    start: int
    end: int


class PayloadMatcher:
    """Locates the first ``exit('...')`` payload literal."""

    def match(self, text: str) -> Optional[PayloadMatch]:
        found = _PAYLOAD_PATTERN.search(text)
        if found is None:
            return None
        group = "single" if found.group("single") is not None else "double"
        body = _unescape(found.group(group), "'" if group == "single" else '"')
        if not body.strip():
            return None
        return PayloadMatch(text=body, start=found.start(group), end=found.end(group))


class CostMatcher:
    """Locates the integer literal returned by (or assigned to) the cost accessor.

    Only a literal directly following the accessor marker counts; other
    integers in the file are ignored.
    """

    def __init__(self, accessor: str = DEFAULT_COST_ACCESSOR):
        if not accessor or not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", accessor):
            raise ValueError(f"Invalid cost accessor name: {accessor!r}")
        self.accessor = accessor
        name = re.escape(accessor)
        self._pattern = re.compile(
            # function getQueryCost(): int { return 68; }
            rf"\b{name}\s*\([^)]*\)[^{{;]*\{{\s*return\s+(?P<fn>\d+)\s*;"
            # procedure GetExpectedCost(): Integer begin exit(68); end;
            rf"|\b{name}\s*\([^)]*\)[^;]*?\bexit\(\s*(?P<ex>\d+)\s*\)\s*;"
            # 'getQueryCost' => 68  /  getQueryCost = 68  /  getQueryCost: 68
            rf"|(?P<q>['\"]?)\b{name}(?P=q)\s*(?:=>|=|:)\s*(?P<kv>\d+)\b",
            re.DOTALL,
        )

    def match(self, text: str) -> Optional[CostMatch]:
        found = self._pattern.search(text)
        if found is None:
            return None
        group = next(name for name in ("fn", "ex", "kv") if found.group(name) is not None)
        return CostMatch(
            value=int(found.group(group)),
            start=found.start(group),
            end=found.end(group),
        )


@dataclass(frozen=True)
class ParseResult:
    """Independent results of the payload and cost matchers."""
    payload: Optional[PayloadMatch]
    cost: Optional[CostMatch]

    @property
    def payload_text(self) -> Optional[str]:
        return self.payload.text if self.payload else None

    @property
    def declared_cost(self) -> Optional[int]:
        return self.cost.value if self.cost else None


class ArtifactParser:
    """Runs both matchers over an artifact's text."""

    def __init__(self, accessor: str = DEFAULT_COST_ACCESSOR):
        self.payload_matcher = PayloadMatcher()
        self.cost_matcher = CostMatcher(accessor)

    def parse(self, text: str) -> ParseResult:
        return ParseResult(
            payload=self.payload_matcher.match(text),
            cost=self.cost_matcher.match(text),
        )


def decode_payload(text: str) -> CostQuery:
    """Turn a normalized payload into a CostQuery.

    A JSON object with a string ``query`` member supplies the query and its
    optional ``variables``; anything else is taken as a bare query string.

    Raises:
        ExtractionError: If the payload is a malformed JSON object or carries
            non-object ``variables``
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        if _JSON_OBJECT_START.match(text):
            raise ExtractionError(f"Payload is not valid JSON: {e}") from e
        return CostQuery(query=text.strip())

    if isinstance(data, dict) and isinstance(data.get("query"), str):
        variables = data.get("variables") or {}
        if not isinstance(variables, dict):
            raise ExtractionError("Payload 'variables' must be a JSON object")
        return CostQuery(query=data["query"], variables=variables)
    return CostQuery(query=text.strip())


def _unescape(body: str, quote: str) -> str:
    # Quoted literals only escape their own quote character and the backslash
    pattern = r"\\([\\" + quote + r"])"
    if quote == "'":
        pattern = r"''|" + pattern
    return re.sub(pattern, lambda m: m.group(1) or "'", body)
