# sentinelmind/services/indicator_scanner.py

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import UnparseableInput
from .reference_lists import ReferenceLists
from .typosquatting import TyposquattingDetector
from .url_normalizer import URLNormalizer, ParsedURL

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class IndicatorRule(str, Enum):
    """One tag per heuristic rule"""
    KNOWN_BAD_HOST = "known_bad_host"
    SHORTENER = "shortener"
    INSECURE_SCHEME = "insecure_scheme"
    CREDENTIAL_PATH = "credential_path"
    TYPOSQUAT = "typosquat"
    URGENCY_LANGUAGE = "urgency_language"
    SUSPICIOUS_SENDER = "suspicious_sender_domain"
    INSECURE_LINK = "insecure_link"
    CREDENTIAL_REQUEST = "credential_request"
    UNPARSEABLE_INPUT = "unparseable_input"


@dataclass(frozen=True)
class Indicator:
    """A single flagged signal produced by a heuristic rule"""
    rule: IndicatorRule
    kind: str
    risk_level: RiskLevel
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "rule": self.rule.value,
            "kind": self.kind,
            "risk_level": self.risk_level.value,
            "description": self.description,
        }


@dataclass(frozen=True)
class ScanResult:
    """Indicators produced by one scan, in rule order"""
    target: str  # "url" | "email"
    input: str
    indicators: Tuple[Indicator, ...] = field(default_factory=tuple)

    @property
    def kinds(self) -> List[str]:
        return [indicator.kind for indicator in self.indicators]

    @property
    def highest_risk(self) -> Optional[RiskLevel]:
        if not self.indicators:
            return None
        return max((i.risk_level for i in self.indicators), key=lambda r: r.rank)

    def has(self, rule: IndicatorRule) -> bool:
        return any(indicator.rule is rule for indicator in self.indicators)

    def to_dict(self) -> Dict[str, Any]:
        highest = self.highest_risk
        return {
            "target": self.target,
            "input": self.input,
            "indicators": [indicator.to_dict() for indicator in self.indicators],
            "highest_risk": highest.value if highest else None,
        }


class HeuristicIndicatorScanner:
    """
    Local phishing heuristics for URLs and email bodies.

    Each rule is an independent predicate that contributes at most one
    Indicator; every rule that matches is reported (no rule suppresses
    another). Scanning is pure pattern matching: no network, no state.
    """

    def __init__(self, reference_lists: Optional[ReferenceLists] = None,
                 detector: Optional[TyposquattingDetector] = None):
        self.lists = reference_lists or ReferenceLists()
        self.detector = detector or TyposquattingDetector()
        self.url_normalizer = URLNormalizer()

        # Precompiled regex patterns
        self.patterns = {
            'sender_domain': re.compile(r'^From:.*@([^\s>]+)', re.IGNORECASE | re.MULTILINE),
            'embedded_url': re.compile(r'https?://[^\s<>"\']+', re.IGNORECASE),
        }

        self._url_rules: List[Callable[[ParsedURL], Optional[Indicator]]] = [
            self._check_known_bad_host,
            self._check_shortener,
            self._check_insecure_scheme,
            self._check_credential_path,
            self._check_typosquat,
        ]
        self._email_rules: List[Callable[[str], Optional[Indicator]]] = [
            self._check_urgency_language,
            self._check_sender_domain,
            self._check_insecure_links,
            self._check_credential_request,
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scan_url(self, url: str) -> ScanResult:
        """
        Apply every URL rule to the parsed hostname and full URL.

        A string that cannot be parsed as an absolute URL yields a single
        "Unparseable URL" indicator instead of an exception.
        """
        try:
            parsed = self.url_normalizer.parse(url)
        except UnparseableInput as e:
            logger.warning(f"Unparseable URL submitted for scanning: {e}")
            return ScanResult(target="url", input=url or "", indicators=(
                Indicator(
                    rule=IndicatorRule.UNPARSEABLE_INPUT,
                    kind="Unparseable URL",
                    risk_level=RiskLevel.MEDIUM,
                    description="Unable to analyze URL. Please check the format.",
                ),
            ))

        indicators = self._apply(self._url_rules, parsed)
        logger.info(f"URL scan of {parsed.hostname}: {len(indicators)} indicator(s)")
        return ScanResult(target="url", input=parsed.original, indicators=indicators)

    def scan_email(self, text: str) -> ScanResult:
        """Apply every email rule to the raw message text (case-insensitive)."""
        text = text or ""
        indicators = self._apply(self._email_rules, text)
        logger.info(f"Email scan ({len(text)} chars): {len(indicators)} indicator(s)")
        return ScanResult(target="email", input=text, indicators=indicators)

    def _apply(self, rules, subject) -> Tuple[Indicator, ...]:
        indicators = []
        for rule in rules:
            indicator = rule(subject)
            if indicator is not None:
                logger.debug(f"Rule fired: {indicator.rule.value} ({indicator.risk_level.value})")
                indicators.append(indicator)
        return tuple(indicators)

    # ------------------------------------------------------------------
    # URL rules
    # ------------------------------------------------------------------

    @staticmethod
    def _matches_domain(hostname: str, domain: str) -> bool:
        """hostname is domain itself or one of its subdomains"""
        return hostname == domain or hostname.endswith('.' + domain)

    def _check_known_bad_host(self, url: ParsedURL) -> Optional[Indicator]:
        hits = [bad for bad in self.lists.denylist if bad in url.hostname]
        if not hits:
            return None
        return Indicator(
            rule=IndicatorRule.KNOWN_BAD_HOST,
            kind="Suspicious Domain",
            risk_level=RiskLevel.HIGH,
            description=f"Domain {url.hostname} is known for hosting malicious content",
        )

    def _check_shortener(self, url: ParsedURL) -> Optional[Indicator]:
        if not any(self._matches_domain(url.hostname, s) for s in self.lists.shorteners):
            return None
        return Indicator(
            rule=IndicatorRule.SHORTENER,
            kind="URL Shortener",
            risk_level=RiskLevel.MEDIUM,
            description="URL shorteners can hide malicious destinations",
        )

    def _check_insecure_scheme(self, url: ParsedURL) -> Optional[Indicator]:
        if url.scheme == 'https':
            return None
        return Indicator(
            rule=IndicatorRule.INSECURE_SCHEME,
            kind="Insecure Connection",
            risk_level=RiskLevel.MEDIUM,
            description="URL does not use secure HTTPS protocol",
        )

    def _check_credential_path(self, url: ParsedURL) -> Optional[Indicator]:
        if 'login' not in url.path.lower():
            return None
        if any(self._matches_domain(url.hostname, t) for t in self.lists.trusted_login_domains):
            return None
        return Indicator(
            rule=IndicatorRule.CREDENTIAL_PATH,
            kind="Potential Credential Harvesting",
            risk_level=RiskLevel.HIGH,
            description="URL contains login functionality from untrusted domain",
        )

    def _check_typosquat(self, url: ParsedURL) -> Optional[Indicator]:
        matches = self.detector.find_suspicious_matches(url.bare_hostname,
                                                        self.lists.legitimate_domains)
        if not matches:
            return None
        best = matches[0]
        return Indicator(
            rule=IndicatorRule.TYPOSQUAT,
            kind="Typosquatting",
            risk_level=RiskLevel.HIGH,
            description=f"Domain appears to mimic {best.reference_domain} "
                        f"({round(best.score * 100)}% similar)",
        )

    # ------------------------------------------------------------------
    # Email rules
    # ------------------------------------------------------------------

    def _check_urgency_language(self, text: str) -> Optional[Indicator]:
        lowered = text.lower()
        found = [k for k in self.lists.urgency_keywords if k in lowered]
        if not found:
            return None
        return Indicator(
            rule=IndicatorRule.URGENCY_LANGUAGE,
            kind="Urgency Tactics",
            risk_level=RiskLevel.MEDIUM,
            description="Email uses urgency language to pressure quick action",
        )

    def _check_sender_domain(self, text: str) -> Optional[Indicator]:
        match = self.patterns['sender_domain'].search(text)
        if not match:
            return None
        domain = match.group(1).lower()
        if not any(marker in domain for marker in self.lists.sender_domain_markers):
            return None
        return Indicator(
            rule=IndicatorRule.SUSPICIOUS_SENDER,
            kind="Suspicious Sender Domain",
            risk_level=RiskLevel.HIGH,
            description=f"Sender domain {domain} uses security-themed naming",
        )

    def _check_insecure_links(self, text: str) -> Optional[Indicator]:
        links = self.patterns['embedded_url'].findall(text)
        insecure = [link for link in links if not link.lower().startswith('https://')]
        if not insecure:
            return None
        return Indicator(
            rule=IndicatorRule.INSECURE_LINK,
            kind="Insecure Link",
            risk_level=RiskLevel.MEDIUM,
            description=f"Email contains {len(insecure)} non-HTTPS link(s)",
        )

    def _check_credential_request(self, text: str) -> Optional[Indicator]:
        lowered = text.lower()
        if not any(k in lowered for k in self.lists.credential_keywords):
            return None
        return Indicator(
            rule=IndicatorRule.CREDENTIAL_REQUEST,
            kind="Credential Request",
            risk_level=RiskLevel.HIGH,
            description="Email requests sensitive login information",
        )
