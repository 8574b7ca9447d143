# test_indicator_scanner.py
"""
Heuristic URL and email indicator tests.
Positive cases mirror the phishing samples the dashboard ships with; negative
cases make sure ordinary traffic stays quiet.
"""

import idna
import pytest

from sentinelmind.services.indicator_scanner import (
    HeuristicIndicatorScanner,
    IndicatorRule,
    RiskLevel,
)
from sentinelmind.services.errors import UnparseableInput
from sentinelmind.services.reference_lists import ReferenceLists
from sentinelmind.services.typosquatting import TyposquattingDetector
from sentinelmind.services.url_normalizer import URLNormalizer

PHISHING_EMAIL = (
    "From: PayPal Security <alerts@secure-paypal.com>\n"
    "Subject: URGENT: Your account has been suspended\n"
    "\n"
    "We detected unusual activity. Your account access expires today.\n"
    "Click http://paypal-account-check.com/restore and verify your password immediately.\n"
)

BENIGN_EMAIL = (
    "From: Grandma <grandma@example.com>\n"
    "Subject: Sunday dinner\n"
    "\n"
    "Are you coming on Sunday? The recipe is at https://example.com/roast\n"
)

MALFORMED_URLS = [
    "",
    "   ",
    "not a url",
    "www.example.com",
    "http://",
    "http://exa mple.com/",
    "https://example.com:99999/",
]


@pytest.fixture
def scanner():
    return HeuristicIndicatorScanner()


class TestURLScanning:

    # =========================================================================
    # POSITIVE CASES
    # =========================================================================

    def test_denylisted_shortener_over_http(self, scanner):
        result = scanner.scan_url("http://bit.ly/abc123")
        assert result.kinds == ["Suspicious Domain", "URL Shortener", "Insecure Connection"]
        assert result.highest_risk is RiskLevel.HIGH

    def test_shortener_not_on_denylist(self, scanner):
        result = scanner.scan_url("https://t.co/xyz")
        assert result.kinds == ["URL Shortener"]
        assert result.indicators[0].risk_level is RiskLevel.MEDIUM

    def test_shortener_subdomain(self, scanner):
        assert scanner.scan_url("https://m.t.co/xyz").has(IndicatorRule.SHORTENER)

    def test_lookalike_login_page(self, scanner):
        result = scanner.scan_url("https://paypa1.com/login")
        assert result.kinds == ["Potential Credential Harvesting", "Typosquatting"]
        assert "paypal.com" in result.indicators[1].description
        assert "90% similar" in result.indicators[1].description

    def test_www_prefix_is_ignored_for_typosquatting(self, scanner):
        result = scanner.scan_url("https://www.g00gle.com/")
        assert result.has(IndicatorRule.TYPOSQUAT)

    def test_login_path_is_case_insensitive(self, scanner):
        assert scanner.scan_url("https://example.net/LOGIN").has(IndicatorRule.CREDENTIAL_PATH)

    def test_scheme_compared_case_insensitively(self, scanner):
        assert not scanner.scan_url("HTTPS://example.net/").has(IndicatorRule.INSECURE_SCHEME)
        assert scanner.scan_url("HTTP://example.net/").has(IndicatorRule.INSECURE_SCHEME)

    def test_punycode_host_is_decoded(self, scanner):
        host = idna.encode("paypäl.com").decode("ascii")
        result = scanner.scan_url(f"https://{host}/")
        assert result.has(IndicatorRule.TYPOSQUAT)

    # =========================================================================
    # NEGATIVE CASES
    # =========================================================================

    @pytest.mark.parametrize("url", [
        "https://google.com",
        "https://www.microsoft.com/en-us",
        "https://docs.python.org/3/library/",
        "https://en.wikipedia.org/wiki/Phishing",
    ])
    def test_clean_urls(self, scanner, url):
        assert scanner.scan_url(url).indicators == ()

    @pytest.mark.parametrize("url", [
        "https://google.com/login",
        "https://accounts.google.com/login",
        "https://login.microsoft.com/login",
    ])
    def test_trusted_login_pages(self, scanner, url):
        assert not scanner.scan_url(url).has(IndicatorRule.CREDENTIAL_PATH)

    def test_trusted_domain_is_not_matched_by_suffix_alone(self, scanner):
        assert scanner.scan_url("https://notgoogle.com/login").has(IndicatorRule.CREDENTIAL_PATH)

    def test_login_in_query_does_not_count(self, scanner):
        assert not scanner.scan_url("https://example.net/home?next=login").has(IndicatorRule.CREDENTIAL_PATH)

    # =========================================================================
    # MALFORMED INPUT
    # =========================================================================

    @pytest.mark.parametrize("url", MALFORMED_URLS)
    def test_unparseable_url_yields_single_indicator(self, scanner, url):
        result = scanner.scan_url(url)
        assert len(result.indicators) == 1
        indicator = result.indicators[0]
        assert indicator.kind == "Unparseable URL"
        assert indicator.rule is IndicatorRule.UNPARSEABLE_INPUT
        assert indicator.risk_level is RiskLevel.MEDIUM

    def test_scanning_is_deterministic(self, scanner):
        url = "http://paypa1.com/login"
        assert scanner.scan_url(url) == scanner.scan_url(url)

    def test_each_rule_fires_at_most_once(self, scanner):
        result = scanner.scan_url("http://bit.ly/login/bit.ly")
        rules = [indicator.rule for indicator in result.indicators]
        assert len(rules) == len(set(rules))


class TestEmailScanning:

    def test_phishing_email_trips_every_rule(self, scanner):
        result = scanner.scan_email(PHISHING_EMAIL)
        assert result.kinds == [
            "Urgency Tactics",
            "Suspicious Sender Domain",
            "Insecure Link",
            "Credential Request",
        ]
        assert result.highest_risk is RiskLevel.HIGH

    def test_benign_email(self, scanner):
        result = scanner.scan_email(BENIGN_EMAIL)
        assert result.indicators == ()
        assert result.highest_risk is None

    def test_empty_email(self, scanner):
        assert scanner.scan_email("").indicators == ()

    def test_urgency_is_case_insensitive(self, scanner):
        assert scanner.scan_email("ACT NOW before it is too late").kinds == ["Urgency Tactics"]

    def test_multiple_insecure_links_give_one_indicator(self, scanner):
        result = scanner.scan_email("See http://a.example/ and http://b.example/ and https://c.example/")
        assert result.kinds == ["Insecure Link"]
        assert "2 non-HTTPS" in result.indicators[0].description

    @pytest.mark.parametrize("sender", [
        "From: alerts@secure-bank.com",
        "From: Support <help@account-verification.net>",
        "from: it@corp-security.io",
    ])
    def test_security_themed_sender(self, scanner, sender):
        assert scanner.scan_email(sender).has(IndicatorRule.SUSPICIOUS_SENDER)

    def test_ordinary_sender(self, scanner):
        assert not scanner.scan_email("From: news@securemail.com").has(IndicatorRule.SUSPICIOUS_SENDER)

    def test_sender_is_read_from_header_line_only(self, scanner):
        quoted = "From: Grandma <grandma@example.com>\n\n> Reply from: a@secure-x.com\n"
        assert not scanner.scan_email(quoted).has(IndicatorRule.SUSPICIOUS_SENDER)

    def test_sender_header_after_other_headers(self, scanner):
        text = "Subject: hello\nFrom: alerts@secure-bank.com\n"
        assert scanner.scan_email(text).has(IndicatorRule.SUSPICIOUS_SENDER)

    def test_credential_request(self, scanner):
        result = scanner.scan_email("Please confirm your Password by replying.")
        assert result.kinds == ["Credential Request"]


class TestCustomLists:

    def test_lists_are_supplied_by_caller(self):
        lists = ReferenceLists(
            denylist=("evil.example",),
            legitimate_domains=("mybank.com",),
            urgency_keywords=("hurry",),
        )
        scanner = HeuristicIndicatorScanner(lists)

        assert scanner.scan_url("https://login.evil.example/").has(IndicatorRule.KNOWN_BAD_HOST)
        assert scanner.scan_url("https://mybamk.com/").has(IndicatorRule.TYPOSQUAT)
        assert not scanner.scan_url("https://paypa1.com/").has(IndicatorRule.TYPOSQUAT)
        assert scanner.scan_email("Hurry!").kinds == ["Urgency Tactics"]
        assert scanner.scan_email("urgent").indicators == ()

    def test_detector_bounds_are_respected(self):
        scanner = HeuristicIndicatorScanner(detector=TyposquattingDetector(low_bound=0.95))
        assert not scanner.scan_url("https://paypa1.com/").has(IndicatorRule.TYPOSQUAT)

    def test_result_serialization(self, scanner):
        data = scanner.scan_url("http://t.co/x").to_dict()
        assert data["target"] == "url"
        assert data["highest_risk"] == "medium"
        assert {i["rule"] for i in data["indicators"]} == {"shortener", "insecure_scheme"}


class TestURLNormalizer:

    def test_parse_components(self):
        parsed = URLNormalizer().parse("HTTPS://WWW.Example.COM./Path?q=1")
        assert parsed.scheme == "https"
        assert parsed.hostname == "www.example.com"
        assert parsed.bare_hostname == "example.com"
        assert parsed.path == "/Path"
        assert parsed.query == "q=1"
        assert parsed.has_punycode is False

    def test_punycode_decoding(self):
        host = idna.encode("paypäl.com").decode("ascii")
        parsed = URLNormalizer().parse(f"https://{host}/")
        assert parsed.has_punycode is True
        assert parsed.hostname == host
        assert parsed.display_hostname == "paypäl.com"

    @pytest.mark.parametrize("url", MALFORMED_URLS)
    def test_malformed_urls_raise(self, url):
        with pytest.raises(UnparseableInput):
            URLNormalizer().parse(url)
