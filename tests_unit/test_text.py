"""
Text Helper Tests (Unit)
========================

WHAT: Slugs, reading time, excerpts, personalization and timestamp parsing.

REFERENCES:
- creatorhub/utils/text.py
- creatorhub/utils/dates.py
"""

from datetime import datetime

from creatorhub.utils.dates import parse_provider_datetime
from creatorhub.utils.text import (
    make_excerpt,
    personalization_variables,
    personalize,
    reading_time,
    slugify,
)


class TestSlugs:
    def test_punctuation_and_spaces(self) -> None:
        assert slugify("  Hello,   World! 2025 ") == "hello-world-2025"

    def test_length_cap(self) -> None:
        assert len(slugify("a" * 300)) == 100


class TestReading:
    def test_minimum_one_minute(self) -> None:
        assert reading_time("") == 1

    def test_html_is_ignored(self) -> None:
        assert reading_time("<div>" + "<b>word</b> " * 226 + "</div>") == 2

    def test_excerpt_prefers_sentence_end(self) -> None:
        text = "This first sentence is long enough to count. " + "x " * 200
        assert make_excerpt(text, 60) == "This first sentence is long enough to count."

    def test_excerpt_word_boundary(self) -> None:
        assert make_excerpt("alpha beta gamma delta", 12) == "alpha beta..."


class TestPersonalization:
    def test_defaults_without_name(self) -> None:
        variables = personalization_variables("ann@example.com")
        assert variables == {"first_name": "there", "full_name": "ann@example.com", "email": "ann@example.com"}

    def test_unknown_placeholders_are_left_alone(self) -> None:
        rendered = personalize("Hi {{ First_Name }}, {{coupon}}", {"first_name": "Ann"})
        assert rendered == "Hi Ann, {{coupon}}"


class TestProviderTimestamps:
    def test_zulu_is_normalized_to_naive_utc(self) -> None:
        assert parse_provider_datetime("2025-03-01T10:00:00Z") == datetime(2025, 3, 1, 10, 0)

    def test_offset_is_converted(self) -> None:
        assert parse_provider_datetime("2025-03-01T12:00:00+02:00") == datetime(2025, 3, 1, 10, 0)

    def test_garbage(self) -> None:
        assert parse_provider_datetime("yesterday") is None
        assert parse_provider_datetime("") is None
