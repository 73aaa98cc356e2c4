"""Post fetching collaborators.

``PostFetcher`` is the seam the worker pool depends on; tests substitute a
deterministic fake. ``HttpPostFetcher`` talks to the post source over HTTP.
"""
import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup
from pydantic import ValidationError as PydanticValidationError

from social_recipes.app.core.config import get_settings
from social_recipes.app.core.errors import FetchError
from social_recipes.app.schemas.post import RawPost

logger = logging.getLogger(__name__)


class PostFetcher(ABC):
    @abstractmethod
    def fetch(self, post_id: str) -> RawPost:  # pragma: no cover - interface
        """Return the post content or raise FetchError."""
        raise NotImplementedError


def _meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def raw_post_from_html(post_id: str, html: str) -> RawPost:
    """Reduce a public post page to its Open Graph caption and image."""
    soup = BeautifulSoup(html, "html.parser")
    caption = _meta_content(soup, "og:description") or _meta_content(soup, "description")
    if not caption and soup.title and soup.title.string:
        caption = soup.title.string.strip() or None
    return RawPost(
        post_id=post_id,
        caption=caption,
        image_url=_meta_content(soup, "og:image"),
        video_url=_meta_content(soup, "og:video"),
    )


class HttpPostFetcher(PostFetcher):
    """Fetch posts from ``{base_url}/{post_id}``.

    JSON bodies are mapped onto RawPost; HTML bodies fall back to Open Graph
    metadata. A single attempt is made per call.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        user_agent: Optional[str] = None,
    ):
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.post_fetch_timeout_seconds
        self.user_agent = user_agent or settings.scraper_user_agent
        self._client = client

    @contextmanager
    def _http(self) -> Iterator[httpx.Client]:
        if self._client is not None:
            yield self._client
            return
        # One client per call keeps the fetcher safe to share across worker threads
        with httpx.Client(follow_redirects=True, timeout=self.timeout) as client:
            yield client

    def fetch(self, post_id: str) -> RawPost:
        url = f"{self.base_url}/{quote(post_id, safe='')}"
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json, text/html;q=0.9, */*;q=0.5",
        }
        try:
            with self._http() as client:
                resp = client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise FetchError("fetch_timeout", f"Timed out fetching post {post_id}") from exc
        except httpx.HTTPError as exc:
            raise FetchError("fetch_failed", f"Network error: {exc}") from exc

        if resp.status_code == 404:
            raise FetchError("post_not_found", f"Post {post_id} not found", status_code=404)
        if resp.status_code == 429:
            raise FetchError("rate_limited", "Post source is rate limiting requests", status_code=429)
        if resp.status_code >= 400:
            raise FetchError("fetch_failed", f"Post source returned status {resp.status_code}.", status_code=resp.status_code)

        ctype = resp.headers.get("content-type", "").lower()
        if "html" in ctype:
            return raw_post_from_html(post_id, resp.text)
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise FetchError("invalid_response", f"Post {post_id} response is not valid JSON") from exc
        if not isinstance(data, dict):
            raise FetchError("invalid_response", f"Post {post_id} response is not an object")
        try:
            return RawPost.model_validate({**data, "post_id": post_id})
        except PydanticValidationError as exc:
            logger.warning("Post %s payload rejected: %s", post_id, exc)
            raise FetchError("invalid_response", f"Post {post_id} payload has unexpected shape") from exc
