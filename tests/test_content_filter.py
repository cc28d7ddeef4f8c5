"""Tests for content safety filtering."""

from artchat.core import content_filter
from artchat.core.content_filter import (
    analyze,
    count_profanity,
    detect_suspicious_patterns,
    filter_profanity,
    redact,
    sanitize,
    validate_content,
)


def test_redact_email():
    assert redact("Lovely piece, write to art@studio.com") == (
        "Lovely piece, write to [EMAIL REMOVED]"
    )


def test_redact_url():
    assert redact("See https://gallery.example.com/piece today") == (
        "See [LINK REMOVED] today"
    )


def test_redact_phone_number():
    assert redact("Call 555 123 4567 tonight") == "Call [PHONE REMOVED] tonight"


def test_redact_keeps_short_numbers():
    text = "The canvas is 30 by 40 inches, painted in 2019"
    assert redact(text) == text


def test_redact_social_handle():
    assert redact("ping @studio_jane") == "ping [HANDLE REMOVED]"


def test_redact_platform_and_contact_request():
    assert redact("Find me on Instagram") == (
        "[CONTACT REQUEST REMOVED] [PLATFORM REMOVED]"
    )


def test_redact_collapses_whitespace():
    assert redact("  hello    there  ") == "hello there"


def test_redact_passes_through_empty_values():
    assert redact("") == ""
    assert redact(None) is None


def test_filter_profanity_masks_whole_words_any_case():
    result = filter_profanity("this is BadWord1 stuff", ["badword1"])
    assert result == "this is ******** stuff"


def test_filter_profanity_ignores_partial_words():
    assert filter_profanity("badword1s", ["badword1"]) == "badword1s"


def test_sanitize_redacts_then_masks():
    assert sanitize("badword1 art@studio.com") == "******** [EMAIL REMOVED]"


def test_validate_content_clean_text():
    assert validate_content("Is the painting still available?") == ([], [])


def test_validate_content_email():
    categories, violations = validate_content("Write to jane@example.com")
    assert categories == [content_filter.ViolationCategory.CONTACT_INFO]
    assert violations == ["Email addresses are not allowed"]


def test_validate_content_lists_each_platform():
    categories, violations = validate_content("whatsapp or telegram works")
    assert categories == [content_filter.ViolationCategory.PLATFORM]
    assert "References to whatsapp are not allowed" in violations
    assert "References to telegram are not allowed" in violations


def test_detect_suspicious_patterns():
    assert detect_suspicious_patterns("five five five one two")
    assert detect_suspicious_patterns("jane at example dot com")
    assert detect_suspicious_patterns("555.123.4567")
    assert not detect_suspicious_patterns("The canvas is large")
    assert not detect_suspicious_patterns(None)


def test_count_profanity():
    assert count_profanity("badword1 and badword2") == 2
    assert count_profanity("clean", ["badword1"]) == 0


def test_analyze_clean_text_is_approved():
    analysis = analyze("Is the painting still available?")
    assert analysis.score == 100
    assert analysis.acceptable
    assert analysis.recommendation == "APPROVE"
    assert analysis.violations == []


def test_analyze_single_category_is_accepted():
    analysis = analyze("jane@example.com")
    assert analysis.score == 80
    assert analysis.acceptable


def test_analyze_contact_sharing_is_rejected():
    analysis = analyze("Contact me at jane@example.com or call 555-123-4567")
    # contact info, contact request and a suspicious digit run
    assert analysis.score == 35
    assert not analysis.acceptable
    assert analysis.recommendation == "REJECT"
    assert analysis.has_suspicious_patterns
    assert analysis.violations == [
        "Email addresses are not allowed",
        "Phone numbers are not allowed",
        "Requests for direct contact are not allowed",
    ]


def test_analyze_score_at_threshold_is_accepted():
    analysis = analyze("badword1 badword2")
    assert analysis.score == 70
    assert analysis.has_profanity
    assert analysis.acceptable


def test_analyze_custom_threshold():
    assert not analyze("badword1 badword2", threshold=71).acceptable


def test_analyze_score_never_below_zero():
    text = "email me at a@b.com, 555-123-4567, https://x.io, @handle, whatsapp, badword1"
    assert analyze(text).score == 0


def test_analyze_non_string():
    assert analyze(None).score == 100
