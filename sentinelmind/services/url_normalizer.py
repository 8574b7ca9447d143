# sentinelmind/services/url_normalizer.py
import re
from dataclasses import dataclass
from urllib.parse import urlparse
from typing import Dict, Any
import idna
import logging

from .errors import UnparseableInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedURL:
    """Pieces of a URL the indicator rules look at"""
    original: str
    scheme: str
    hostname: str            # lowercased, as it appears on the wire (may be xn--)
    display_hostname: str    # punycode decoded to Unicode for look-alike checks
    path: str
    query: str
    has_punycode: bool

    @property
    def bare_hostname(self) -> str:
        """Display hostname without a leading www."""
        host = self.display_hostname
        return host[4:] if host.startswith('www.') else host


class URLNormalizer:
    """
    URL parsing utilities for the indicator scanner.
    Rejects strings that are not absolute URLs and decodes punycode hosts.
    """

    _whitespace = re.compile(r'\s')

    def parse(self, url: str) -> ParsedURL:
        """
        Parse an absolute URL.

        Raises UnparseableInput when the string has no scheme or host,
        has whitespace in the host, or urllib rejects it outright.
        """
        if url is None or not str(url).strip():
            raise UnparseableInput(url or "", "empty URL")

        original = str(url).strip()

        try:
            parsed = urlparse(original)
            hostname = parsed.hostname
            # Accessing .port validates it (raises ValueError when out of range)
            parsed.port
        except ValueError as e:
            raise UnparseableInput(original, f"invalid URL ({e})") from e

        if not parsed.scheme or not parsed.netloc:
            raise UnparseableInput(original, "missing scheme or host")
        if not hostname or self._whitespace.search(parsed.netloc):
            raise UnparseableInput(original, "invalid host")

        hostname = hostname.lower().rstrip('.')
        punycode_info = self._detect_punycode(hostname)

        return ParsedURL(
            original=original,
            scheme=parsed.scheme.lower(),
            hostname=hostname,
            display_hostname=punycode_info['decoded_hostname'],
            path=parsed.path,
            query=parsed.query,
            has_punycode=punycode_info['has_punycode'],
        )

    def _detect_punycode(self, hostname: str) -> Dict[str, Any]:
        """
        Detect punycode/IDN in hostname and decode it for analysis.
        Homograph hosts (Cyrillic 'а' for Latin 'a') only become visible
        to the edit-distance checks once decoded.
        """
        has_punycode = 'xn--' in hostname

        decoded_hostname = hostname
        if has_punycode:
            try:
                decoded_hostname = idna.decode(hostname)
            except (idna.IDNAError, UnicodeError) as e:
                # If decoding fails, keep original
                logger.warning(f"Could not decode punycode host {hostname}: {e}")
                decoded_hostname = hostname

        return {
            'has_punycode': has_punycode,
            'original_hostname': hostname,
            'decoded_hostname': decoded_hostname,
        }
