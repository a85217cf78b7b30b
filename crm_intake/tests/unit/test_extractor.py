"""Unit tests for structured data extraction and classification."""

import pytest
from datetime import datetime, timedelta, timezone

from crm_intake.core.models import ContactBundle, Sentiment, Urgency
from crm_intake.parsing.classifier import analyze_email, detect_category
from crm_intake.parsing.extractor import (
    extract_action_items,
    extract_amounts,
    extract_dates,
    extract_emails,
    extract_names,
    extract_phones,
    extract_structured_data,
    filter_internal_contacts,
)

NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class TestExtractDates:
    """Tests for date recognition."""

    def test_iso_date(self):
        """Test ISO dates are parsed as UTC midnight."""
        assert extract_dates("Kickoff on 2026-03-15", NOW) == [
            datetime(2026, 3, 15, tzinfo=timezone.utc)
        ]

    def test_month_name_date(self):
        """Test dates written with a month name."""
        assert extract_dates("Launch is March 20, 2026", NOW) == [
            datetime(2026, 3, 20, tzinfo=timezone.utc)
        ]

    def test_relative_dates(self):
        """Test today and tomorrow resolve against the reference time."""
        assert extract_dates("Call me tomorrow", NOW) == [NOW + timedelta(days=1)]
        assert extract_dates("Ship it today", NOW) == [NOW]

    def test_phrase_without_date_ignored(self):
        """Test keyword phrases without a date-like token yield nothing."""
        assert extract_dates("The due date is unknown", NOW) == []

    def test_duplicates_removed(self):
        """Test the same date mentioned twice appears once."""
        dates = extract_dates("Starts 2026-04-01. Again: 2026-04-01", NOW)
        assert dates == [datetime(2026, 4, 1, tzinfo=timezone.utc)]


class TestExtractAmounts:
    """Tests for monetary amounts."""

    def test_dollar_amounts(self):
        """Test $ amounts with separators and cents."""
        assert extract_amounts("Total $1,250.50 plus $300") == [1250.5, 300.0]

    def test_currency_word(self):
        """Test amounts followed by USD."""
        assert extract_amounts("Roughly 3,000 USD for the pilot") == [3000.0]

    def test_zero_excluded_and_deduplicated(self):
        """Test zero amounts are dropped and repeats appear once."""
        assert extract_amounts("$0 down, then $500 and $500 again") == [500.0]


class TestExtractActionItems:
    """Tests for action item recognition."""

    def test_explicit_and_imperative_items(self):
        """Test labelled items and please-requests are both found, in pattern order."""
        text = "Action Item: Send revised quote\nPlease review the attached draft."
        assert extract_action_items(text) == [
            "Send revised quote",
            "review the attached draft",
        ]

    def test_short_items_dropped(self):
        """Test items shorter than six characters are ignored."""
        assert extract_action_items("TODO: call") == []


class TestExtractContacts:
    """Tests for emails, phones and names."""

    def test_emails_deduplicated_case_insensitively(self):
        """Test the first spelling of an address is kept."""
        assert extract_emails("Jane@Beta.com and jane@beta.com, ops@beta.com") == [
            "Jane@Beta.com",
            "ops@beta.com",
        ]

    def test_phone_formats(self):
        """Test domestic and international numbers."""
        phones = extract_phones("Office 555-123-4567, London +44 20 7946 0958")
        assert "555-123-4567" in phones
        assert "+44 20 7946 0958" in phones

    def test_names(self):
        """Test capitalized word runs become names, denylisted words do not."""
        assert extract_names("Please call Jane Doe tomorrow") == ["Jane Doe"]
        assert extract_names("Best Regards") == []

    def test_filter_internal_contacts(self):
        """Test staff addresses are removed by domain and by exact address."""
        contacts = ContactBundle(emails=[
            "alice@infoglobaltech.com",
            "jane@beta.com",
            "Boss@Partner.com",
        ])
        removed = filter_internal_contacts(
            contacts, ["infoglobaltech.com"], ["boss@partner.com"]
        )
        assert removed == 2
        assert contacts.emails == ["jane@beta.com"]


class TestExtractStructuredData:
    """Tests for the combined extractor."""

    def test_subject_and_body_scanned(self):
        """Test subject and content are both searched."""
        data = extract_structured_data(
            "Budget is $5,000. Please send the contract by 5/1.",
            subject="Account: Acme Corp",
            now=NOW,
        )
        assert data.amounts == [5000.0]
        assert data.max_amount == 5000.0
        assert "send the contract by 5/1" in data.action_items
        assert datetime(2026, 5, 1, tzinfo=timezone.utc) in data.dates

    def test_empty_content(self):
        """Test empty input gives an empty snapshot."""
        data = extract_structured_data(None, None, now=NOW)
        assert data.counts() == {"dates": 0, "amounts": 0, "action_items": 0}
        assert data.max_amount is None


class TestAnalyzeEmail:
    """Tests for keyword classification."""

    def test_negative_urgent_complaint(self):
        """Test urgency, negative sentiment and complaint category."""
        result = analyze_email(
            "This is urgent, please respond. We have a problem with the invoice.",
            "Issue",
        )
        assert result.urgency == Urgency.HIGH
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.category == "Complaint"

    def test_positive_thank_you(self):
        """Test positive sentiment and thank-you category."""
        result = analyze_email("Thanks so much, we appreciate the great work", "")
        assert result.sentiment == Sentiment.POSITIVE
        assert result.urgency == Urgency.LOW
        assert result.category == "Thank You"

    def test_defaults(self):
        """Test neutral, low and General when nothing matches."""
        result = analyze_email("Hello there", "")
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.urgency == Urgency.LOW
        assert result.category == "General"

    def test_medium_urgency(self):
        """Test medium-tier keywords."""
        assert analyze_email("Can you get back to me soon", "").urgency == Urgency.MEDIUM

    @pytest.mark.parametrize("text,category", [
        ("can you send pricing", "Proposal"),
        ("checking on the status", "Follow-up"),
        ("let's schedule a call", "Meeting"),
        ("we want to purchase licenses", "Order"),
    ])
    def test_categories(self, text, category):
        """Test the first matching category wins."""
        assert detect_category(text) == category
