from __future__ import annotations

import logging

from plan_config import MAX_CANDIDATES
from plan_models import CandidatePage, CandidateTag, PageLine
from plan_rules import Rule, rule, score_rules

logger = logging.getLogger(__name__)

SCORING_RULES: list[Rule[CandidateTag]] = [
    rule(r"(APARTMENT|DWELLING|RESIDENTIAL)\s+(UNIT|APT)\s+(SCHEDULE|MIX)", 5, "schedule"),
    rule(r"(UNIT\s+MIX|UNIT\s+COUNT|UNIT\s+SCHEDULE|SCHEDULE\s+OF\s+UNITS)", 4, "schedule"),
    rule(r"OCCUPANT\s+LOAD", 4, "schedule"),
    rule(r"BC\s*1004", 3, "schedule"),
    rule(r"AREA\s+PER\s+OCCUPANT", 3, "schedule"),
    rule(r"(FAR|ZFA|ZONING\s+FLOOR\s+AREA|LOT\s+AREA)", 3, "far"),
    rule(r"(AFFORDABLE|MIH|INCLUSIONARY|UAP|AMI|RESTRICTED)", 3, "schedule"),
    rule(r"TOTAL\s+OCCUPANCY", 2, "schedule"),
    rule(r"(NET|GROSS)\s*(SF|SQ\.?\s*FT|AREA)", 2, "schedule"),
]

SCHEDULE_PAGE_MIN_SCORE = 3


def score_page(lines: list[PageLine]) -> tuple[int, list[CandidateTag]]:
    score, tags = score_rules(SCORING_RULES, (line.text for line in lines))
    return int(score), tags


def is_schedule_candidate_page(lines: list[PageLine]) -> bool:
    score, _ = score_page(lines)
    return score >= SCHEDULE_PAGE_MIN_SCORE


def detect_candidate_pages(
    page_lines: dict[int, list[PageLine]],
    max_candidates: int = MAX_CANDIDATES,
) -> list[CandidatePage]:
    """Pick up to *max_candidates* pages worth parsing, returned in page order.

    When any page carries a ``schedule`` (or ``far``) tag, at least one such
    page is in the result even if it did not make the top-N by score.
    """
    scored: list[CandidatePage] = []
    for page in sorted(page_lines):
        score, tags = score_page(page_lines[page])
        if score > 0:
            scored.append(CandidatePage(page=page, score=score, tags=tags))

    scored.sort(key=lambda c: -c.score)
    selected = scored[:max_candidates]
    forced: list[CandidatePage] = []

    for tag in ("schedule", "far"):
        if any(tag in c.tags for c in selected):
            continue
        extra = next((c for c in scored if tag in c.tags and c not in selected), None)
        if extra is None:
            continue
        if len(selected) >= max_candidates:
            evictable = [c for c in selected if c not in forced]
            if evictable:
                selected.remove(min(reversed(evictable), key=lambda c: c.score))
        selected.append(extra)
        forced.append(extra)
        logger.debug("forced page %d into candidates for tag %s", extra.page, tag)

    return sorted(selected, key=lambda c: c.page)
