"""Recover failed downloads of content that already lives on IPFS."""

import re
from urllib.parse import urlsplit

import structlog

from ipfs_podcasting.core.exceptions import UpdaterError
from ipfs_podcasting.updater.fetch import ContentFetcher
from ipfs_podcasting.updater.models import StoredContent

logger = structlog.get_logger(__name__)

CONTENT_PATH_PREFIX = "/ipfs/"
CIDV0_LENGTH = 46

# base58btc, sha2-256 multihash
_CIDV0_PATTERN = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")


def is_cidv0(value: str) -> bool:
    return bool(_CIDV0_PATTERN.match(value))


def extract_content_address(url: str) -> str | None:
    """Content address embedded in a gateway URL, if there is one.

    Only the fixed-width segment right after ``/ipfs/`` is considered, so
    anything other than a CIDv0 there is rejected.
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return None

    if not path.startswith(CONTENT_PATH_PREFIX):
        return None

    start = len(CONTENT_PATH_PREFIX)
    candidate = path[start : start + CIDV0_LENGTH]
    if not is_cidv0(candidate):
        return None
    return candidate


class FallbackResolver:
    """Fetch, then try pinning the embedded address, then fetch once more."""

    def __init__(self, fetcher: ContentFetcher) -> None:
        self.fetcher = fetcher

    async def fetch_or_pin(self, url: str, filename: str) -> StoredContent:
        try:
            return await self.fetcher.fetch_and_store(url, filename)
        except UpdaterError as e:
            logger.warning("Download failed, trying fallback", url=url, error=str(e))

        address = extract_content_address(url)
        if address is not None:
            try:
                return await self.fetcher.pin_reference(address)
            except UpdaterError as e:
                logger.warning(
                    "Pinning embedded address failed", url=url, address=address, error=str(e)
                )

        logger.info("Retrying download", url=url)
        return await self.fetcher.fetch_and_store(url, filename)
