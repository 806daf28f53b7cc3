"""Compiled regular expressions used by the quality gate."""

from __future__ import annotations

import re

_I = re.IGNORECASE
_MONTH = (
    r"(january|february|march|april|may|june|july|august|september|october|november|december)"
)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, _I) for p in patterns)


# ---------------------------------------------------------------------------
# Calls to action
# ---------------------------------------------------------------------------

CTA_PATTERNS = _compile(
    r"download tackle|tackle app|get tackle|install tackle",
    r"\[download tackle\]|\[get tackle\]|\[install tackle\]",
    r"/download",
    r"what to do next.*download",
    r"ready to.*download",
    r"get.*tackle.*iphone",
)

VALUE_PROP_PATTERN = re.compile(
    r"real-time|live conditions|tide|wind|weather|ai fish|fish id|log catch|track|personalized",
    _I,
)

# ---------------------------------------------------------------------------
# Regulations
# ---------------------------------------------------------------------------

REGULATIONS_REMINDER_PATTERNS = _compile(
    r"see local regulations|check.*local regulations|consult.*local regulations|see.*regulations",
    r"regulations.*change|always verify.*regulations|check.*regulations.*official",
)

# Neutral phrasing that exempts nearby text from the blocklists below.
SAFE_ALLOWLIST_PATTERNS = _compile(
    r"see local regulations",
    r"check local regulations",
    r"consult local regulations",
    r"see.*local.*rules",
    r"check.*local.*rules",
    r"verify.*local.*regulations",
    r"always verify.*regulations",
    r"check.*regulations.*official",
    r"regulations.*change",
    r"regulations.*vary",
    r"local.*regulations.*apply",
    r"regulations.*differ",
    r"check.*official.*regulations",
    r"consult.*official.*sources",
    r"refer.*to.*local.*regulations",
)

BAG_LIMIT_PATTERNS = _compile(
    r"\d+\s+fish\s+per\s+(day|person|angler|trip)",
    r"\d+\s+fish\s+(per|each)\s+(day|person|angler|trip)",
    r"bag limit.*\d+",
    r"daily limit.*\d+",
    r"harvest limit.*\d+",
    r"possession limit.*\d+",
    r"creel limit.*\d+",
    r"catch limit.*\d+",
    r"keep.*\d+\s+fish",
    r"take.*\d+\s+fish",
    r"retain.*\d+\s+fish",
    r"maximum.*\d+\s+fish",
    r"limit.*\d+\s+fish",
    r"up to.*\d+\s+fish",
    r"possess.*\d+\s+fish",
    r"possession.*\d+",
    r"\d+\s+fish.*limit",
    r"limit.*\d+.*fish",
)

SIZE_LIMIT_PATTERNS = _compile(
    r"minimum.*\d+\s*inch",
    r"at least.*\d+\s*inch",
    r"no less than.*\d+\s*inch",
    r"must be.*\d+\s*inch",
    r"must measure.*\d+\s*inch",
    r"maximum.*\d+\s*inch",
    r"no more than.*\d+\s*inch",
    r"must not exceed.*\d+\s*inch",
    r"slot limit.*\d+",
    r"slot.*\d+.*\d+",
    r"size limit.*\d+",
    r"\d+\s*-\s*\d+\s*inch",
    r"\d+\s*to\s*\d+\s*inch",
    r"between.*\d+.*and.*\d+.*inch",
    r"from.*\d+.*to.*\d+.*inch",
    r"\d+\s*inch.*minimum",
    r"\d+\s*inch.*maximum",
    r"\d+\s*inch.*limit",
    r"minimum.*\d+\s*(cm|centimeter)",
    r"at least.*\d+\s*(cm|centimeter)",
)

POSSESSION_LIMIT_PATTERNS = _compile(
    r"possession limit.*\d+",
    r"possess.*\d+\s+fish",
    r"possession.*\d+",
    r"total possession.*\d+",
    r"combined possession.*\d+",
    r"aggregate possession.*\d+",
)

SEASON_PATTERNS = _compile(
    r"closed.*season",
    rf"closed.*{_MONTH}",
    r"closed.*from.*to",
    r"closed.*between",
    rf"no fishing.*{_MONTH}",
    rf"fishing.*closed.*{_MONTH}",
    r"open.*season",
    rf"open.*{_MONTH}",
    rf"season runs.*{_MONTH}",
    rf"fishing.*open.*{_MONTH}",
    rf"season.*{_MONTH}.*{_MONTH}",
    r"closed.*\d+/\d+.*\d+/\d+",
    r"open.*\d+/\d+.*\d+/\d+",
)

LEGAL_CLAIM_PATTERNS = _compile(
    r"illegal to",
    r"illegal.*fish",
    r"against the law",
    r"violation.*fine",
    r"subject to fine",
    r"fined.*\d+",
    r"penalty.*\d+",
    r"must have.*license",
    r"required.*permit",
    r"required.*license",
    r"legal requirement",
    r"mandatory.*license",
    r"mandatory.*permit",
    r"law requires",
    r"legally required",
    r"prohibited by law",
)

# Category -> (patterns, error message)
REGULATION_BLOCKLISTS: dict[str, tuple[tuple[re.Pattern[str], ...], str]] = {
    "bag_limit": (
        BAG_LIMIT_PATTERNS,
        'BLOCKED: Content contains specific bag limit information (e.g., "X fish per day"). '
        'Remove all bag limit numbers. Use "See local regulations" instead.',
    ),
    "size_limit": (
        SIZE_LIMIT_PATTERNS,
        'BLOCKED: Content contains specific size limit information (e.g., "minimum X inches"). '
        'Remove all size measurements. Use "See local regulations" instead.',
    ),
    "possession_limit": (
        POSSESSION_LIMIT_PATTERNS,
        "BLOCKED: Content contains specific possession limit information. "
        'Remove all possession limit numbers. Use "See local regulations" instead.',
    ),
    "season": (
        SEASON_PATTERNS,
        "BLOCKED: Content contains specific season/date information "
        '(e.g., "closed season", specific months). Remove all specific dates. '
        'Use "See local regulations" instead.',
    ),
    "legal_claim": (
        LEGAL_CLAIM_PATTERNS,
        'BLOCKED: Content makes legal claims (e.g., "illegal", "against the law", '
        '"required license"). Remove all legal advice and requirements. '
        'Use "See local regulations" instead.',
    ),
}

# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

NUMBERED_STEP_PATTERN = re.compile(r"step \d+|step-by-step|^\d+\.", _I | re.MULTILINE)
NUMBERED_LINE_PATTERN = re.compile(r"^\d+\.", re.MULTILINE)
INSTRUCTIONS_PATTERN = re.compile(
    r"how to|instructions|guide|tutorial|process|method|technique|follow these|do this", _I
)
ACTIONABLE_PATTERN = re.compile(
    r"first.*second.*third|begin by|start with|next.*then|finally|in conclusion.*action", _I
)
INSTRUCTIONAL_PARAGRAPH_PATTERN = re.compile(
    r"step|instruction|guide|how|method|technique|process|procedure|action|do|make|create"
    r"|build|tie|attach|connect",
    _I,
)
HOW_TO_STEPS_PATTERN = re.compile(r"step \d+|step-by-step|first.*second.*third|1\.|2\.|3\.", _I)
HOW_TO_INSTRUCTIONS_PATTERN = re.compile(
    r"how to|instructions|guide|tutorial|process|method|technique", _I
)

PLACEHOLDER_PATTERNS = _compile(
    r"lorem ipsum",
    r"placeholder",
    r"\[insert.*here\]",
    r"todo:",
    r"fixme:",
    r"xxx",
)

EMPTY_LINK_PATTERN = re.compile(r"\[.*?\]\(\)")
UNCLOSED_LINK_PATTERN = re.compile(r"\[.*?\]\([^)]*$", re.MULTILINE)

SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")
PARAGRAPH_SPLIT_PATTERN = re.compile(r"\n\n")
