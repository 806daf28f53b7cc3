"""Pre-publish quality gate.

Fast, deterministic, rule-based checks run immediately before a
document is committed.  ``run_quality_gate`` is a pure function of the
document and the thresholds; it never touches the store.

Blog posts carry extra requirements (calls to action in both halves of
the body, a neutral regulations reminder, practical steps).  The
regulation blocklists, thin-content, keyword-stuffing, diversity and
placeholder checks apply to every page type.
"""

from __future__ import annotations

import logging
import math
import re

from tacklepub.config import QualityConfig
from tacklepub.content.models import Document, PageType
from tacklepub.quality import patterns as p
from tacklepub.quality.models import QualityGateResult

logger = logging.getLogger(__name__)


def _any_match(pats: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(pat.search(text) for pat in pats)


def _paragraphs(body: str) -> list[str]:
    return [para for para in p.PARAGRAPH_SPLIT_PATTERN.split(body) if para.strip()]


def _sentences(body: str) -> list[str]:
    return [s for s in p.SENTENCE_SPLIT_PATTERN.split(body) if len(s.strip()) > 20]


# ---------------------------------------------------------------------------
# Blog-only checks
# ---------------------------------------------------------------------------


def _check_cta(body: str, result: QualityGateResult) -> None:
    words = body.split()
    top_half = " ".join(words[: len(words) // 2])
    bottom_section = " ".join(words[math.floor(len(words) * 0.6) :])

    has_top = _any_match(p.CTA_PATTERNS, top_half)
    has_bottom = _any_match(p.CTA_PATTERNS, bottom_section)

    if not has_top:
        result.errors.append(
            "BLOCKED: Missing required App CTA in top half of content. Blog posts must include "
            "at least one call-to-action for the Tackle app in the first half of the content."
        )
    if not has_bottom:
        result.errors.append(
            "BLOCKED: Missing required App CTA near the end. Blog posts must include at least "
            "one call-to-action for the Tackle app in the last 40% of the content."
        )
    if has_top and has_bottom and not p.VALUE_PROP_PATTERN.search(body):
        result.warnings.append(
            "CTA found but missing value proposition (real-time conditions, AI fish ID, etc.)"
        )


def _check_regulations_reminder(body: str, result: QualityGateResult) -> None:
    if not _any_match(p.REGULATIONS_REMINDER_PATTERNS, body):
        result.errors.append(
            'BLOCKED: Missing required "See local regulations" block. Blog posts must include '
            "a neutral reminder to check local regulations (no specific limits, seasons, or "
            "legal claims)."
        )


def _check_practical_steps(body: str, config: QualityConfig, result: QualityGateResult) -> None:
    has_numbered = (
        bool(p.NUMBERED_STEP_PATTERN.search(body))
        or len(p.NUMBERED_LINE_PATTERN.findall(body)) >= 3
    )
    has_instructions = bool(p.INSTRUCTIONS_PATTERN.search(body))
    has_actionable = bool(p.ACTIONABLE_PATTERN.search(body))
    instructional = [
        para for para in _paragraphs(body) if p.INSTRUCTIONAL_PARAGRAPH_PATTERN.search(para)
    ]

    if not (has_numbered or has_instructions or has_actionable):
        result.errors.append(
            "BLOCKED: Content lacks practical steps or instructions. Blog posts must include "
            "actionable steps, numbered instructions, or clear how-to guidance."
        )
    elif not has_numbered and len(instructional) < config.min_instructional_paragraphs:
        result.errors.append(
            "BLOCKED: Content lacks sufficient practical steps. Blog posts must include at "
            f"least {config.min_instructional_paragraphs} instructional paragraphs with "
            "actionable steps or numbered instructions."
        )


# ---------------------------------------------------------------------------
# Checks for every page type
# ---------------------------------------------------------------------------


def _check_regulation_specifics(body: str, window: int, result: QualityGateResult) -> None:
    """Block specific limits, seasons and legal claims outside a neutral context.

    A match is exempt when an allow-listed neutral phrase appears within
    ``window`` characters of it.  Each category is reported at most once.
    """
    has_safe_phrase = _any_match(p.SAFE_ALLOWLIST_PATTERNS, body)

    def in_safe_context(match: re.Match[str]) -> bool:
        if not has_safe_phrase:
            return False
        context = body[max(0, match.start() - window) : match.end() + window]
        return _any_match(p.SAFE_ALLOWLIST_PATTERNS, context)

    for pats, message in p.REGULATION_BLOCKLISTS.values():
        if any(
            not in_safe_context(match) for pat in pats for match in pat.finditer(body)
        ):
            result.errors.append(message)


def _check_thin_content(
    doc: Document, word_count: int, config: QualityConfig, result: QualityGateResult
) -> None:
    body = doc.body
    min_words = config.min_words_for(doc.page_type)
    if word_count < min_words:
        result.errors.append(
            f"BLOCKED: Content too short ({word_count} words, minimum {min_words}). "
            "Thin content detected."
        )

    if doc.page_type == PageType.HOW_TO:
        has_steps = (
            bool(p.HOW_TO_STEPS_PATTERN.search(body))
            or len(p.NUMBERED_LINE_PATTERN.findall(body)) >= 3
        )
        has_instructions = bool(p.HOW_TO_INSTRUCTIONS_PATTERN.search(body))
        if not has_steps and not has_instructions:
            result.errors.append(
                "BLOCKED: Content lacks actionable steps or instructions. Thin content detected."
            )
        elif not has_steps and word_count < 1200:
            result.warnings.append(
                "Content mentions instructions but lacks numbered steps. "
                "Consider adding step-by-step format."
            )

    substantial = [para for para in _paragraphs(body) if len(para.split()) >= 50]
    if len(substantial) < 3:
        result.warnings.append(
            f"Only {len(substantial)} substantial paragraphs found. Content may be thin."
        )

    heading_count = len(doc.headings)
    words_per_heading = word_count / max(heading_count, 1)
    if words_per_heading < 100 and heading_count > 5:
        result.warnings.append(
            f"Low content-to-heading ratio ({round(words_per_heading)} words/heading). "
            "Content may be thin."
        )


def _check_keyword_stuffing(
    doc: Document, word_count: int, sentences: list[str], result: QualityGateResult
) -> None:
    body_lower = doc.body.lower()
    keyword = doc.primary_keyword.lower()
    count = body_lower.count(keyword)
    density = count / max(word_count, 1) * 100

    if density > 3:
        result.errors.append(
            f'BLOCKED: Keyword stuffing detected. Primary keyword "{keyword}" appears {count} '
            f"times ({density:.1f}% density, maximum 3%)."
        )
    elif density > 2:
        result.warnings.append(
            f'High keyword density: {density:.1f}% for "{keyword}". Consider reducing usage.'
        )

    for phrase in doc.secondary_keywords[:5]:
        phrase_density = body_lower.count(phrase.lower()) / max(word_count, 1) * 100
        if phrase_density > 2:
            result.warnings.append(
                f'High density for secondary keyword "{phrase}": {phrase_density:.1f}%'
            )

    consecutive = sum(
        1
        for current, following in zip(sentences, sentences[1:])
        if keyword in current.lower() and keyword in following.lower()
    )
    if consecutive > 3:
        result.warnings.append(
            f"Primary keyword appears in {consecutive} consecutive sentences. "
            "May appear unnatural."
        )

    exact = re.findall(rf"\b{re.escape(keyword)}\b", doc.body, re.IGNORECASE)
    if len(exact) > 10:
        result.warnings.append(
            f'Primary keyword "{keyword}" appears {len(exact)} times. Consider using variations.'
        )


def _check_variation(
    body: str, sentences: list[str], config: QualityConfig, result: QualityGateResult
) -> None:
    words = [w for w in body.lower().split() if len(w) > 3]
    if words:
        diversity = len(set(words)) / len(words)
        if diversity < config.min_lexical_diversity:
            result.errors.append(
                f"BLOCKED: Low lexical diversity ({diversity * 100:.1f}%, minimum "
                f"{config.min_lexical_diversity * 100:.0f}%). Content appears repetitive."
            )

    if len(sentences) >= 10:
        lengths = [len(s.split()) for s in sentences]
        avg = sum(lengths) / len(lengths)
        stddev = math.sqrt(sum((n - avg) ** 2 for n in lengths) / len(lengths))
        if stddev < avg * config.min_sentence_stddev_ratio:
            result.errors.append(
                "BLOCKED: Repetitive sentence structure detected. "
                "Content lacks natural variation."
            )


def _check_formatting(body: str, result: QualityGateResult) -> None:
    if _any_match(p.PLACEHOLDER_PATTERNS, body):
        result.errors.append(
            "BLOCKED: Content contains placeholder text. Remove all placeholders before publishing."
        )
    if p.EMPTY_LINK_PATTERN.search(body) or p.UNCLOSED_LINK_PATTERN.search(body):
        result.warnings.append("Broken markdown links detected. Review content formatting.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_quality_gate(doc: Document, config: QualityConfig | None = None) -> QualityGateResult:
    """Run every check against ``doc`` and collect errors and warnings."""
    config = config or QualityConfig()
    result = QualityGateResult()
    body = doc.body
    word_count = len(body.split())
    sentences = _sentences(body)

    if doc.page_type == PageType.BLOG:
        _check_cta(body, result)
        _check_regulations_reminder(body, result)

    _check_regulation_specifics(body, config.safe_context_window, result)

    if doc.page_type == PageType.BLOG:
        _check_practical_steps(body, config, result)

    _check_thin_content(doc, word_count, config, result)
    _check_keyword_stuffing(doc, word_count, sentences, result)
    _check_variation(body, sentences, config, result)
    _check_formatting(body, result)

    if result.blocked:
        logger.error(
            "Quality gate FAILED for %s:%s: %s", doc.page_type, doc.slug, "; ".join(result.errors)
        )
    elif result.warnings:
        logger.warning(
            "Quality gate passed with warnings for %s:%s: %s",
            doc.page_type,
            doc.slug,
            "; ".join(result.warnings),
        )
    else:
        logger.info("Quality gate PASSED for %s:%s", doc.page_type, doc.slug)
    return result
