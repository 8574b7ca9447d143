# sentinelmind/services/reference_lists.py

import json
import logging
import time
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Any, Optional, Tuple


logger = logging.getLogger(__name__)

LISTS_FILENAME = "indicator_lists.json"


@dataclass(frozen=True)
class ReferenceLists:
    """
    Configuration data the indicator rules match against.
    Supplied by the caller; the defaults are the lists the dashboard ships with.
    """
    denylist: Tuple[str, ...] = (
        'bit.ly', 'tinyurl.com', 'shortened.link', 'sus-domain.net',
    )
    shorteners: Tuple[str, ...] = (
        'bit.ly', 'tinyurl.com', 't.co', 'goo.gl', 'ow.ly', 'is.gd', 'buff.ly',
    )
    trusted_login_domains: Tuple[str, ...] = (
        'google.com', 'microsoft.com',
    )
    legitimate_domains: Tuple[str, ...] = (
        'google.com', 'microsoft.com', 'apple.com', 'amazon.com', 'paypal.com',
    )
    urgency_keywords: Tuple[str, ...] = (
        'urgent', 'immediate', 'suspended', 'expires', 'act now', 'limited time',
    )
    sender_domain_markers: Tuple[str, ...] = (
        'secure-', '-security', 'verification-', '-verification',
    )
    credential_keywords: Tuple[str, ...] = (
        'password', 'login', 'verify',
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceLists":
        """Build from a JSON-style dict; unknown keys are ignored, missing keys keep defaults"""
        if not isinstance(data, dict):
            raise ValueError(f"Reference lists must be an object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        values = {}
        for key, items in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown reference list: {key}")
                continue
            if not isinstance(items, (list, tuple)):
                logger.warning(f"Reference list {key} is not a list, keeping default")
                continue
            values[key] = tuple(str(item).strip().lower() for item in items if str(item).strip())
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {key: list(items) for key, items in asdict(self).items()}


class ReferenceListService:
    """
    File-based reference list loader.
    Reads data/indicator_lists.json with hot-reload capability and keeps a
    scanner built from the current lists.
    """

    def __init__(self, data_dir: Optional[str] = None, reload_interval: int = 300, detector=None):
        # Auto-detect data directory
        if data_dir is None:
            for check_dir in ["data", "api/data"]:
                if Path(check_dir).exists():
                    data_dir = check_dir
                    break
            if data_dir is None:
                data_dir = "data"

        self.data_dir = Path(data_dir)
        self.last_reload = 0.0
        self.reload_interval = reload_interval
        self.source = "defaults"
        self.detector = detector

        self.lists = ReferenceLists()
        self._scanner = None

        self.load_all_data()

    @property
    def file_path(self) -> Path:
        return self.data_dir / LISTS_FILENAME

    def load_all_data(self) -> bool:
        """Load reference lists from disk, falling back to the built-in defaults"""
        start_time = time.time()
        ok = True

        if not self.file_path.exists():
            logger.warning(f"Reference list file not found: {self.file_path}, using defaults")
            self.lists = ReferenceLists()
            self.source = "defaults"
        else:
            try:
                with open(self.file_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    data = data.get('lists', data)
                self.lists = ReferenceLists.from_dict(data)
                self.source = str(self.file_path)
            except (OSError, ValueError, TypeError) as e:
                # Keep whatever was loaded last
                logger.error(f"Failed to load reference lists from {self.file_path}: {e}")
                ok = False

        self._scanner = None
        self.last_reload = time.time()
        load_time = (time.time() - start_time) * 1000
        logger.info(f"Reference lists loaded in {load_time:.1f}ms from {self.source}: "
                    f"{len(self.lists.legitimate_domains)} legitimate domains, "
                    f"{len(self.lists.denylist)} denylisted hosts")
        return ok

    @property
    def scanner(self):
        """Indicator scanner bound to the currently loaded lists"""
        if self._scanner is None:
            from .indicator_scanner import HeuristicIndicatorScanner
            self._scanner = HeuristicIndicatorScanner(self.lists, detector=self.detector)
        return self._scanner

    def hot_reload_if_needed(self) -> bool:
        """Reload data if enough time has passed (for live updates)"""
        if time.time() - self.last_reload > self.reload_interval:
            logger.info("Hot-reloading reference lists...")
            return self.load_all_data()
        return False

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about loaded reference data"""
        stats: Dict[str, Any] = {name: len(items) for name, items in asdict(self.lists).items()}
        stats.update({
            "source": self.source,
            "last_reload": self.last_reload,
        })
        return stats
