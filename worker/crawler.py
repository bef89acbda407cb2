"""
Eleduck crawler.

Category pages are server-rendered by Next.js, so the post list is read from the
`__NEXT_DATA__` script instead of the visible markup. Listings are newest
first: the first post older than the cutoff ends paging for that category.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from core.config import FetcherConfig
from core.models import RawJob

log = logging.getLogger("worker.crawler")

DEFAULT_BASE_URL = "https://eleduck.com"
DEFAULT_SOURCE = "eleduck"
DEFAULT_CATEGORY_PATHS = ["/categories/5?sort=new", "/categories/22?sort=new"]
DEFAULT_REMOTE_MARKERS = ["远程", "remote"]
DEFAULT_MAX_AGE_DAYS = 30

# Known locations of the post list inside __NEXT_DATA__, tried in order.
POST_LIST_SHAPES = (
    ("props", "pageProps", "postList", "posts"),
    ("props", "initialProps", "pageProps", "postList", "posts"),
)


class CrawlError(Exception):
    """Transport or page-structure failure; aborts the whole crawl."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_category_paths(paths: Optional[Iterable[str]]) -> List[str]:
    clean = [p.strip() for p in (paths or []) if p and p.strip()]
    return clean or list(DEFAULT_CATEGORY_PATHS)


def build_page_url(base_url: str, category_path: str, page: int) -> str:
    path = category_path
    if page > 1:
        sep = "&" if "?" in path else "?"
        path = f"{path}{sep}page={page}"
    return urljoin(base_url + "/", path)


def extract_next_data(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    text = script.string if script else None
    if not text or not text.strip():
        raise CrawlError("__NEXT_DATA__ not found")
    return text


def _dig(doc: Any, path: Sequence[str]) -> Any:
    node = doc
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def parse_posts(next_data: str) -> List[Dict[str, Any]]:
    """Decode the __NEXT_DATA__ document and return its post list."""
    try:
        doc = json.loads(next_data)
    except json.JSONDecodeError as e:
        raise CrawlError(f"decode __NEXT_DATA__: {e}") from e

    for shape in POST_LIST_SHAPES:
        # A shape matches once its postList object exists, even with no posts.
        if isinstance(_dig(doc, shape[:-1]), dict):
            posts = _dig(doc, shape) or []
            return [p for p in posts if isinstance(p, dict)]
    raise CrawlError("postList not found in __NEXT_DATA__")


def normalize_id(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d\d:\d\d$)")


def _six_digit_fraction(match: re.Match) -> str:
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    return "." + (match.group(1) + "000000")[:6]


def parse_published_at(value: Any) -> Optional[datetime]:
    """RFC 3339 timestamp, or None when missing, unparsable or without offset."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(_six_digit_fraction, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _tag_names(post: Dict[str, Any]) -> List[str]:
    names: List[str] = []
    for tag in post.get("tags") or []:
        if isinstance(tag, dict):
            name = tag.get("name")
        else:
            name = tag
        if name:
            names.append(str(name))
    return names


def pick_summary(post: Dict[str, Any]) -> str:
    for key in ("summary", "excerpt", "full_title", "title"):
        if post.get(key):
            return str(post[key])
    return ""


class EleduckCrawler:
    """Fetches remote-tagged posts from eleduck category listings."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        config: Optional[FetcherConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        now: Callable[[], datetime] = _utc_now,
        source: str = DEFAULT_SOURCE,
    ):
        config = config or FetcherConfig()
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.category_paths = normalize_category_paths(config.category_paths)
        self.max_pages = config.max_pages if config.max_pages > 0 else 1
        self.max_age_days = config.max_age_days if config.max_age_days > 0 else DEFAULT_MAX_AGE_DAYS
        markers = [m.strip().lower() for m in (config.remote_markers or []) if m and m.strip()]
        self.remote_markers = markers or [m.lower() for m in DEFAULT_REMOTE_MARKERS]
        self.source = source
        self.client = client
        self.now = now

    def has_remote_tag(self, tag_names: Iterable[str]) -> bool:
        for name in tag_names:
            lowered = name.lower()
            if any(marker in lowered for marker in self.remote_markers):
                return True
        return False

    def full_url(self, raw: str) -> str:
        if not raw:
            return self.base_url
        if raw.startswith("http://") or raw.startswith("https://"):
            return raw
        return urljoin(self.base_url + "/", raw)

    async def fetch(self) -> List[RawJob]:
        if self.client is not None:
            return await self._fetch_with(self.client)
        async with httpx.AsyncClient(timeout=httpx.Timeout(15.0), follow_redirects=True) as client:
            return await self._fetch_with(client)

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> List[Dict[str, Any]]:
        try:
            resp = await client.get(url)
        except httpx.HTTPError as e:
            raise CrawlError(f"http get {url}: {e}") from e
        if resp.status_code != 200:
            raise CrawlError(f"unexpected status {resp.status_code} for {url}")
        return parse_posts(extract_next_data(resp.text))

    async def _fetch_with(self, client: httpx.AsyncClient) -> List[RawJob]:
        cutoff = self.now() - timedelta(days=self.max_age_days)
        jobs: List[RawJob] = []
        seen = set()

        log.info(
            "Crawl started",
            extra={
                "base_url": self.base_url,
                "categories": ",".join(self.category_paths),
                "max_pages": self.max_pages,
                "cutoff": cutoff.isoformat(),
            },
        )

        for category in self.category_paths:
            for page in range(1, self.max_pages + 1):
                url = build_page_url(self.base_url, category, page)
                posts = await self._fetch_page(client, url)

                accepted = 0
                reached_cutoff = False
                for post in posts:
                    published_at = parse_published_at(post.get("publishedAt") or post.get("published_at"))
                    if published_at is None:
                        continue

                    job_id = normalize_id(post.get("id"))
                    if published_at < cutoff:
                        log.info(
                            "Reached cutoff",
                            extra={"category": category, "page": page, "job_id": job_id},
                        )
                        reached_cutoff = True
                        break

                    tag_names = _tag_names(post)
                    if not self.has_remote_tag(tag_names):
                        continue

                    if job_id:
                        if job_id in seen:
                            log.info("Skip duplicate", extra={"category": category, "job_id": job_id})
                            continue
                        seen.add(job_id)

                    jobs.append(self._build_raw_job(post, job_id, published_at, tag_names))
                    accepted += 1

                log.info(
                    "Crawled page",
                    extra={
                        "url": url,
                        "parsed": len(posts),
                        "accepted": accepted,
                        "cumulative": len(jobs),
                    },
                )
                if reached_cutoff:
                    break

        log.info("Crawl finished", extra={"total": len(jobs)})
        return jobs

    def _build_raw_job(
        self,
        post: Dict[str, Any],
        job_id: str,
        published_at: datetime,
        tag_names: List[str],
    ) -> RawJob:
        title = str(post.get("title") or post.get("full_title") or "")
        url = str(post.get("url") or "")
        if not url and job_id:
            url = f"/posts/{job_id}"

        summary = pick_summary(post)
        payload = dict(post)
        payload["normalized_title"] = summary

        return RawJob(
            source=self.source,
            external_id=job_id,
            title=title,
            summary=summary,
            url=self.full_url(url),
            tags={name: True for name in tag_names},
            raw_payload=payload,
            published_at=published_at,
        )


__all__ = [
    "CrawlError",
    "EleduckCrawler",
    "POST_LIST_SHAPES",
    "build_page_url",
    "extract_next_data",
    "parse_posts",
    "normalize_id",
    "parse_published_at",
]
