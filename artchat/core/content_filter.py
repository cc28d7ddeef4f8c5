"""
Content safety filtering for chat messages.

Everything here is pure and synchronous: detection and redaction of contact
details (emails, phone numbers, links, social handles, messaging platforms,
direct-contact requests), profanity masking, and a 0-100 safety score used to
accept or reject a message before it is stored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

DEFAULT_SAFETY_THRESHOLD = 70
VIOLATION_PENALTY = 20
PROFANITY_PENALTY = 15
SUSPICIOUS_PENALTY = 25
MIN_PHONE_DIGITS = 7

DEFAULT_PROFANITY_WORDS: tuple[str, ...] = ("badword1", "badword2")

EMAIL_REMOVED = "[EMAIL REMOVED]"
PHONE_REMOVED = "[PHONE REMOVED]"
LINK_REMOVED = "[LINK REMOVED]"
HANDLE_REMOVED = "[HANDLE REMOVED]"
PLATFORM_REMOVED = "[PLATFORM REMOVED]"
CONTACT_REQUEST_REMOVED = "[CONTACT REQUEST REMOVED]"

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w+")
URL_PATTERN = re.compile(r"(?:https?://|www\.)\S+", re.IGNORECASE)
# Candidate digit runs; only those with MIN_PHONE_DIGITS digits count as phones.
PHONE_CANDIDATE_PATTERN = re.compile(r"(?<![\w@])\+?\(?\d[\d\s().-]{5,}\d(?![\w@])")
SOCIAL_HANDLE_PATTERN = re.compile(r"(?<![\w.])@\w+")
WHITESPACE_PATTERN = re.compile(r"\s+")

PLATFORM_PATTERNS: dict[str, re.Pattern[str]] = {
    "whatsapp": re.compile(r"\b(?:whatsapp|wa\.me)\b", re.IGNORECASE),
    "telegram": re.compile(r"\b(?:telegram|t\.me)\b", re.IGNORECASE),
    "instagram": re.compile(r"\b(?:instagram|insta)\b", re.IGNORECASE),
    "facebook": re.compile(r"\b(?:facebook|fb\.com)\b", re.IGNORECASE),
    "twitter": re.compile(r"\b(?:twitter|x\.com)\b", re.IGNORECASE),
    "skype": re.compile(r"\bskype\b", re.IGNORECASE),
    "discord": re.compile(r"\bdiscord\b", re.IGNORECASE),
}

CONTACT_PHRASES: tuple[str, ...] = (
    "contact me at",
    "reach me at",
    "call me at",
    "text me at",
    "my number is",
    "my email is",
    "find me on",
    "add me on",
    "follow me on",
    "dm me on",
    "message me on",
    "whatsapp me",
    "telegram me",
    "email me",
    "outside this app",
    "off this platform",
    "meet outside",
    "contact directly",
    "reach directly",
)

CONTACT_PHRASE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(r"\b" + r"\s+".join(map(re.escape, phrase.split())) + r"\b", re.IGNORECASE)
    for phrase in CONTACT_PHRASES
)

SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    # digits spelled out
    re.compile(r"\b(?:zero|one|two|three|four|five|six|seven|eight|nine)\b", re.IGNORECASE),
    # "name at domain dot com"
    re.compile(r"\w+\s+(?:at|@)\s+\w+\s+(?:dot|\.)\s+\w+", re.IGNORECASE),
    # 555-123-4567, 555.123.4567
    re.compile(r"\d+\s*[-._]\s*\d+\s*[-._]\s*\d+"),
    # "instagram: handle"
    re.compile(
        r"\b(?:instagram|facebook|twitter|telegram|whatsapp)\b\s*:\s*\w+",
        re.IGNORECASE,
    ),
)


class ViolationCategory:
    CONTACT_INFO = "contact_info"
    URL = "url"
    SOCIAL_HANDLE = "social_handle"
    PLATFORM = "platform"
    CONTACT_REQUEST = "contact_request"


@dataclass(frozen=True)
class SafetyAnalysis:
    score: int
    acceptable: bool
    violations: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    has_profanity: bool = False
    has_suspicious_patterns: bool = False

    @property
    def recommendation(self) -> str:
        return "APPROVE" if self.acceptable else "REJECT"


def _phone_matches(text: str) -> list[str]:
    return [
        m.group(0)
        for m in PHONE_CANDIDATE_PATTERN.finditer(text)
        if sum(ch.isdigit() for ch in m.group(0)) >= MIN_PHONE_DIGITS
    ]


def _replace_phones(text: str) -> str:
    def _sub(match: re.Match[str]) -> str:
        digits = sum(ch.isdigit() for ch in match.group(0))
        return PHONE_REMOVED if digits >= MIN_PHONE_DIGITS else match.group(0)

    return PHONE_CANDIDATE_PATTERN.sub(_sub, text)


def _profanity_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def redact(text):
    """Replace contact details with placeholder tokens and collapse whitespace."""
    if not text or not isinstance(text, str):
        return text
    result = EMAIL_PATTERN.sub(EMAIL_REMOVED, text)
    result = URL_PATTERN.sub(LINK_REMOVED, result)
    result = _replace_phones(result)
    result = SOCIAL_HANDLE_PATTERN.sub(HANDLE_REMOVED, result)
    for pattern in PLATFORM_PATTERNS.values():
        result = pattern.sub(PLATFORM_REMOVED, result)
    for pattern in CONTACT_PHRASE_PATTERNS:
        result = pattern.sub(CONTACT_REQUEST_REMOVED, result)
    return WHITESPACE_PATTERN.sub(" ", result).strip()


def filter_profanity(text, words: Optional[Iterable[str]] = None):
    """Mask configured profane words (whole word, any case) with asterisks."""
    if not text or not isinstance(text, str):
        return text
    result = text
    for word in words if words is not None else DEFAULT_PROFANITY_WORDS:
        if not word:
            continue
        result = _profanity_pattern(word).sub(lambda m: "*" * len(m.group(0)), result)
    return result


def sanitize(text, words: Optional[Iterable[str]] = None):
    """Text as it is stored: redacted, then profanity-masked."""
    return filter_profanity(redact(text), words)


def validate_content(text: str) -> tuple[list[str], list[str]]:
    """
    Detect contact-sharing violations.

    Returns (categories, violations): the distinct violation categories found,
    and the human-readable reasons reported back to the sender.
    """
    categories: list[str] = []
    violations: list[str] = []
    if not text or not isinstance(text, str):
        return categories, violations

    has_email = EMAIL_PATTERN.search(text) is not None
    has_phone = bool(_phone_matches(text))
    if has_email:
        violations.append("Email addresses are not allowed")
    if has_phone:
        violations.append("Phone numbers are not allowed")
    if has_email or has_phone:
        categories.append(ViolationCategory.CONTACT_INFO)

    if URL_PATTERN.search(text):
        categories.append(ViolationCategory.URL)
        violations.append("URLs and links are not allowed")

    if SOCIAL_HANDLE_PATTERN.search(text):
        categories.append(ViolationCategory.SOCIAL_HANDLE)
        violations.append("Social media handles are not allowed")

    platforms = [
        name for name, pattern in PLATFORM_PATTERNS.items() if pattern.search(text)
    ]
    if platforms:
        categories.append(ViolationCategory.PLATFORM)
        violations.extend(f"References to {name} are not allowed" for name in platforms)

    if any(pattern.search(text) for pattern in CONTACT_PHRASE_PATTERNS):
        categories.append(ViolationCategory.CONTACT_REQUEST)
        violations.append("Requests for direct contact are not allowed")

    return categories, violations


def detect_suspicious_patterns(text: str) -> bool:
    """True when text looks like a creative attempt to slip contact details past the filter."""
    if not text or not isinstance(text, str):
        return False
    return any(pattern.search(text) for pattern in SUSPICIOUS_PATTERNS)


def count_profanity(text: str, words: Optional[Iterable[str]] = None) -> int:
    if not text or not isinstance(text, str):
        return 0
    return sum(
        1
        for word in (words if words is not None else DEFAULT_PROFANITY_WORDS)
        if word and _profanity_pattern(word).search(text)
    )


def analyze(
    text,
    words: Optional[Iterable[str]] = None,
    threshold: int = DEFAULT_SAFETY_THRESHOLD,
) -> SafetyAnalysis:
    """Score text from 0 to 100; acceptable iff the score reaches the threshold."""
    if not isinstance(text, str):
        text = ""
    words = tuple(words) if words is not None else DEFAULT_PROFANITY_WORDS
    categories, violations = validate_content(text)
    profanity = count_profanity(text, words)
    suspicious = detect_suspicious_patterns(text)

    score = 100
    score -= VIOLATION_PENALTY * len(categories)
    score -= PROFANITY_PENALTY * profanity
    score -= SUSPICIOUS_PENALTY if suspicious else 0
    score = max(0, score)

    return SafetyAnalysis(
        score=score,
        acceptable=score >= threshold,
        violations=violations,
        categories=categories,
        has_profanity=profanity > 0,
        has_suspicious_patterns=suspicious,
    )
