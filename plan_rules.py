from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Generic, Iterable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Rule(Generic[T]):
    """A pattern carrying a weight and a tag (role, category, result value)."""

    pattern: re.Pattern
    weight: float
    tag: T


def rule(expr: str, weight: float, tag: T, flags: int = re.IGNORECASE) -> Rule[T]:
    return Rule(re.compile(expr, flags), weight, tag)


def score_rules(rules: Iterable[Rule[T]], texts: Iterable[str]) -> tuple[float, list[T]]:
    """Sum the weights of every rule that matches each text.

    A text can fire several rules and a rule fires once per matching text.
    Tags come back de-duplicated in first-seen order.
    """
    rules = list(rules)
    total = 0.0
    tags: list[T] = []
    for text in texts:
        for r in rules:
            if r.pattern.search(text):
                total += r.weight
                if r.tag not in tags:
                    tags.append(r.tag)
    return total, tags


def first_match(rules: Iterable[Rule[T]], text: str) -> T | None:
    """Tag of the first rule (in table order) whose pattern matches *text*."""
    for r in rules:
        if r.pattern.search(text):
            return r.tag
    return None


def any_match(patterns: Iterable[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)
