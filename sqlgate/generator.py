"""SQL text generators.

The language-model client lives outside this package; anything that can turn
a question into SQL implements :class:`SqlGenerator`. Its output is never
trusted and always goes through the guard. :class:`KeywordSqlGenerator`
provides canned queries for the demo database when no model is available.
"""

from __future__ import annotations

import re
from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class SqlGenerator(Protocol):
    """Turns a natural-language question into SQL text."""

    async def generate(
        self,
        question: str,
        *,
        dialect: str | None = None,
        schema_hint: str | None = None,
    ) -> str: ...


_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def clean_generated_sql(text: str) -> str:
    """Strip markdown fences and surrounding whitespace from model output."""

    return _FENCE_RE.sub("", text.strip()).strip()


# (all of these words must appear, query)
DEMO_FALLBACK_RULES: tuple[tuple[tuple[tuple[str, ...], ...], str], ...] = (
    ((("customer",), ("france",)), "SELECT customerName, city, country FROM customers WHERE country = 'France'"),
    ((("product",), ("price", "cost")), "SELECT productName, buyPrice, MSRP FROM products"),
    (
        (("top",), ("customer",), ("credit",)),
        "SELECT customerName, creditLimit FROM customers ORDER BY creditLimit DESC LIMIT 5",
    ),
    ((("first",), ("10",)), "SELECT customerName, city, country FROM customers LIMIT 10"),
    ((("order",), ("2023",)), "SELECT orderNumber, orderDate, status FROM orders WHERE YEAR(orderDate) = 2023"),
    ((("employee",), ("job",)), "SELECT firstName, lastName, jobTitle FROM employees"),
    ((("product",), ("stock",)), "SELECT productName, quantityInStock FROM products WHERE quantityInStock > 0"),
    (
        (("customer",), ("order",), ("status",)),
        "SELECT c.customerName, o.orderNumber, o.status FROM customers c "
        "JOIN orders o ON c.customerNumber = o.customerNumber",
    ),
    ((("customer",),), "SELECT customerName, city, country FROM customers"),
    ((("product",),), "SELECT productName, productLine, buyPrice FROM products"),
    ((("order",),), "SELECT orderNumber, orderDate, status FROM orders"),
    ((("employee",),), "SELECT firstName, lastName, jobTitle FROM employees"),
)

DEMO_DEFAULT_QUERY = "SELECT customerName, city, country FROM customers"


class KeywordSqlGenerator:
    """Matches question keywords against a fixed rule table.

    Each rule is a sequence of word groups; a rule matches when every group
    has at least one word present in the lowercased question.
    """

    def __init__(
        self,
        rules: Sequence[tuple[Sequence[Sequence[str]], str]] = DEMO_FALLBACK_RULES,
        default: str = DEMO_DEFAULT_QUERY,
    ) -> None:
        self._rules = tuple(rules)
        self._default = default

    async def generate(
        self,
        question: str,
        *,
        dialect: str | None = None,
        schema_hint: str | None = None,
    ) -> str:
        return self.match(question)

    def match(self, question: str) -> str:
        lowered = question.lower()
        for groups, sql in self._rules:
            if all(any(word in lowered for word in group) for group in groups):
                return sql
        return self._default


__all__ = [
    "DEMO_DEFAULT_QUERY",
    "DEMO_FALLBACK_RULES",
    "KeywordSqlGenerator",
    "SqlGenerator",
    "clean_generated_sql",
]
