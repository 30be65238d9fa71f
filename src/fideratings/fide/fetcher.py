"""
Download and extract FIDE monthly rating-list archives.

FIDE publishes one zip per (category, month) under
https://ratings.fide.com/download/ named

    {category}_{mon}{yy}frl.zip       (TXT, before 2020)
    {category}_{mon}{yy}frl_xml.zip   (XML, 2020 onwards)

e.g. ``standard_aug25frl_xml.zip``. A missing archive (HTTP 404) is the
normal answer for a month FIDE has not published yet, or for a category
it did not produce that month, so it is reported as "not available"
(None) rather than raised.
"""

import logging
import shutil
import time
import zipfile
from pathlib import Path
from typing import Optional, Union

import requests

from fideratings.config import settings
from fideratings.exceptions import ArchiveCorrupt, NoDataFileFound, SourceUnavailable
from fideratings.fide.records import Category, validate_category
from fideratings.periods import fide_month_token, is_xml_era, normalize_period

logger = logging.getLogger(__name__)

DATA_FILE_SUFFIXES = (".xml", ".txt")


def rating_list_filename(period: str, category: Category) -> str:
    """
    Archive name FIDE uses for one category's list in one period.

    Examples:
        >>> rating_list_filename("20250801", "blitz")
        'blitz_aug25frl_xml.zip'
        >>> rating_list_filename("20150601", "rapid")
        'rapid_jun15frl.zip'
    """
    category = validate_category(category)
    suffix = "_xml" if is_xml_era(period) else ""
    return f"{category}_{fide_month_token(period)}frl{suffix}.zip"


def _data_members(names: list[str]) -> list[str]:
    return [
        name for name in names
        if not name.endswith("/") and Path(name).suffix.lower() in DATA_FILE_SUFFIXES
    ]


def extract_data_file(zip_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
    """
    Extract the single data file (.xml or .txt) from a rating-list archive.

    Members are written by base name only, so paths inside the archive
    cannot escape dest_dir.

    Raises:
        ArchiveCorrupt: the file is not a zip, or it holds several data files
        NoDataFileFound: the archive has no .xml/.txt member
    """
    zip_path = Path(zip_path)
    dest_dir = Path(dest_dir)

    try:
        with zipfile.ZipFile(zip_path, "r") as zf:
            members = _data_members(zf.namelist())
            if not members:
                raise NoDataFileFound(f"No .xml or .txt file in archive {zip_path.name}")
            if len(members) > 1:
                raise ArchiveCorrupt(
                    f"Archive {zip_path.name} holds {len(members)} data files: {members}"
                )

            dest_dir.mkdir(parents=True, exist_ok=True)
            target = dest_dir / Path(members[0]).name
            with zf.open(members[0]) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
    except zipfile.BadZipFile as exc:
        raise ArchiveCorrupt(f"Corrupt archive {zip_path.name}: {exc}") from exc

    logger.debug("Extracted %s -> %s", zip_path.name, target)
    return target


class RatingListFetcher:
    """
    Fetches FIDE rating-list archives into a local download directory.

    Usage:
        fetcher = RatingListFetcher()
        path = fetcher.fetch("20250801", "standard")
        if path is None:
            ...  # not published (yet)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        download_dir: Union[str, Path, None] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url or settings.fide_download_url
        if not self.base_url.endswith("/"):
            self.base_url += "/"
        self.download_dir = Path(download_dir or settings.download_dir)
        self.timeout = timeout if timeout is not None else settings.download_timeout
        self.max_retries = max_retries or settings.download_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.download_retry_delay
        self.session = session or requests.Session()

    def url_for(self, period: str, category: Category) -> str:
        return f"{self.base_url}{rating_list_filename(period, category)}"

    def extract_dir_for(self, period: str, category: Category) -> Path:
        return self.download_dir / Path(rating_list_filename(period, category)).stem

    def existing_data_file(self, period: str, category: Category) -> Optional[Path]:
        """Return the previously extracted data file, if exactly one is present."""
        extract_dir = self.extract_dir_for(period, category)
        if not extract_dir.is_dir():
            return None
        files = [p for p in extract_dir.iterdir() if p.is_file() and p.suffix.lower() in DATA_FILE_SUFFIXES]
        return files[0] if len(files) == 1 else None

    def fetch(self, period: str, category: Category, strict: bool = False) -> Optional[Path]:
        """
        Return the extracted data file for (period, category).

        Returns None when FIDE has not published the archive or the server
        cannot be reached after retries; with strict=True this raises
        SourceUnavailable instead.

        Raises:
            ArchiveCorrupt, NoDataFileFound: the downloaded archive is unusable
        """
        period = normalize_period(period)
        category = validate_category(category)

        existing = self.existing_data_file(period, category)
        if existing is not None:
            logger.info("Using previously extracted %s", existing)
            return existing

        zip_path = self.download(period, category)
        if zip_path is None:
            if strict:
                raise SourceUnavailable(
                    f"{category} rating list for {period} is not available",
                    period=period,
                    category=category,
                )
            return None

        return extract_data_file(zip_path, self.extract_dir_for(period, category))

    def download(self, period: str, category: Category) -> Optional[Path]:
        """
        Download the archive with retry logic.

        Returns:
            Path of the saved zip, or None if it is not available.
        """
        url = self.url_for(period, category)
        zip_path = self.download_dir / rating_list_filename(period, category)

        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info("Downloading %s (attempt %d/%d)", url, attempt, self.max_retries)
                resp = self.session.get(url, timeout=self.timeout)
                if resp.status_code == 404:
                    logger.warning("Not published: %s (404)", url)
                    return None
                if 400 <= resp.status_code < 500:
                    logger.error("Download refused for %s: HTTP %d", url, resp.status_code)
                    return None
                resp.raise_for_status()
            except (requests.Timeout, requests.ConnectionError, requests.HTTPError) as exc:
                if attempt < self.max_retries:
                    logger.warning("Download of %s failed (%s), retrying", url, exc)
                    time.sleep(self.retry_delay * attempt)
                    continue
                logger.error("Giving up on %s after %d attempts: %s", url, attempt, exc)
                return None

            self.download_dir.mkdir(parents=True, exist_ok=True)
            partial = zip_path.with_suffix(".part")
            partial.write_bytes(resp.content)
            partial.replace(zip_path)
            logger.info("Saved %s (%d bytes)", zip_path.name, len(resp.content))
            return zip_path

        return None
