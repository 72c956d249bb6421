import fnmatch
import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

from fastapi import HTTPException

logger = logging.getLogger(__name__)


def api_host(url: str) -> Optional[str]:
    """Lower-cased host of an API URL; a bare host name is accepted too."""
    if "://" not in url:
        url = f"https://{url}"
    try:
        host = urlparse(url).hostname
    except ValueError as e:
        logger.warning(f"Error parsing URL {url}: {e}")
        return None
    return host.lower() if host else None


class HostAllowList:
    """Host patterns a caller may point the voice app API at.

    Patterns come from the environment and from an optional JSON file
    (``{"allowed_hosts": [...]}``) that is re-read whenever its mtime changes.
    """

    def __init__(self, path: str, patterns: Iterable[str] = ()):
        self.path = Path(path)
        self.patterns = tuple(p.lower() for p in patterns)
        # (mtime, patterns) of the last successful read
        self._file: Tuple[Optional[float], Tuple[str, ...]] = (None, ())

    def file_patterns(self) -> Tuple[str, ...]:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            return ()

        if mtime != self._file[0]:
            try:
                data = json.loads(self.path.read_text())
                patterns = tuple(p.lower() for p in data.get("allowed_hosts", []))
            except (OSError, ValueError, AttributeError) as e:
                logger.error(f"Keeping previous allowed hosts, {self.path} is unreadable: {e}")
            else:
                logger.info(f"Loaded {len(patterns)} allowed hosts from {self.path}")
                self._file = (mtime, patterns)
        return self._file[1]

    def match(self, url: Optional[str]) -> Optional[str]:
        """Returns the pattern that admits the URL's host, if any."""
        host = api_host(url) if url else None
        if not host:
            return None
        return next(
            (p for p in self.file_patterns() + self.patterns if fnmatch.fnmatchcase(host, p)),
            None,
        )

    def is_allowed(self, url: Optional[str]) -> bool:
        return self.match(url) is not None

    def validate_or_raise(self, url: str):
        pattern = self.match(url)
        if pattern is None:
            logger.warning(f"Rejected API URL {url}: host is not in the allow-list")
            raise HTTPException(status_code=403, detail="API URL host is not allowed.")
        logger.debug(f"API URL {url} allowed by {pattern}")
