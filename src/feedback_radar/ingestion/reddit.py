import asyncio
import httpx
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional
from ..models.raw_item import RawItem
from ..errors import (
    ChannelForbiddenError,
    ChannelNotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
)
from ..utils.secrets import get_reddit_credentials
from .base import ContentSource, Page
from ..config import settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def clean_channel_name(raw: str) -> str:
    """Normalize user input like ' r/Widgets ' to 'widgets'."""
    cleaned = raw.strip().lower()
    if cleaned.startswith("/"):
        cleaned = cleaned[1:]
    if cleaned.startswith("r/"):
        cleaned = cleaned[2:]
    return cleaned.strip("/")


class RedditSource(ContentSource):
    """Rate-limited reader for subreddit listings (newest first)."""

    TOKEN_PATH = "/api/v1/access_token"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        page_size: Optional[int] = None,
        request_timeout: Optional[float] = None,
        check_timeout: Optional[float] = None,
        request_delay: Optional[float] = None,
        backoff_base: Optional[float] = None,
        max_retries: Optional[int] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Args:
            client: Shared httpx client (created and owned here when omitted)
            request_delay: Pause after each successful call before the next may start
            backoff_base: First retry wait in seconds; doubles per retry
            max_retries: Retries for 429/5xx/timeouts before giving up
            client_id, client_secret: Reddit app credentials; enables the OAuth host
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.base_url = (base_url or settings.reddit_base_url).rstrip("/")
        self.user_agent = user_agent or settings.reddit_user_agent
        self.page_size = page_size or settings.reddit_page_size
        self.request_timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self.check_timeout = check_timeout if check_timeout is not None else settings.channel_check_timeout
        self.request_delay = request_delay if request_delay is not None else settings.request_delay_seconds
        self.backoff_base = backoff_base if backoff_base is not None else settings.backoff_base_seconds
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self._sleep = sleep

        if client_id is None and client_secret is None:
            client_id, client_secret = get_reddit_credentials()
        self.client_id = client_id
        self.client_secret = client_secret
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._next_request_at = 0.0

    async def __aenter__(self) -> "RedditSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @property
    def uses_oauth(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def fetch_page(self, channel: str, cursor: Optional[str] = None) -> Page:
        params: Dict[str, Any] = {"limit": self.page_size, "raw_json": 1}
        if cursor:
            params["after"] = cursor

        url = await self._url(f"/r/{channel}/new")
        response = await self._get(url, params, self.request_timeout, channel)

        try:
            listing = response.json().get("data") or {}
        except ValueError as e:
            raise UpstreamError(f"Reddit returned a non-JSON listing for r/{channel}") from e

        items = []
        for child in listing.get("children") or []:
            data = child.get("data") or {}
            if not data.get("id"):
                continue
            items.append(self._to_raw_item(data, channel))

        logger.debug(f"r/{channel}: page with {len(items)} posts (after={cursor})")
        return Page(items=items, next_cursor=listing.get("after"))

    async def channel_exists(self, channel: str) -> bool:
        url = await self._url(f"/r/{channel}/about")
        try:
            response = await self._get(url, {}, self.check_timeout, channel)
        except ChannelNotFoundError as e:
            logger.info(f"Channel check failed for r/{channel}: {e}")
            return False

        try:
            about = response.json().get("data") or {}
        except ValueError:
            return False
        # Unknown subreddits answer 200 with an empty listing instead of about data
        return about.get("subscribers") is not None

    def _to_raw_item(self, data: Dict[str, Any], channel: str) -> RawItem:
        created = datetime.fromtimestamp(float(data.get("created_utc") or 0), tz=timezone.utc)
        return RawItem(
            external_id=str(data["id"]),
            title=data.get("title") or "",
            body=data.get("selftext") or "",
            author=data.get("author") or "[deleted]",
            engagement=int(data.get("score") or 0),
            discussion_count=int(data.get("num_comments") or 0),
            created_at=created,
            permalink=f"https://reddit.com{data.get('permalink', '')}",
            channel=(data.get("subreddit") or channel).lower(),
            url=data.get("url") or "",
            is_self=bool(data.get("is_self", True)),
        )

    async def _url(self, path: str) -> str:
        if self.uses_oauth:
            await self._ensure_token()
            return f"{settings.reddit_oauth_base_url.rstrip('/')}{path}"
        return f"{self.base_url}{path}.json"

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _ensure_token(self) -> None:
        if self._token and time.monotonic() < self._token_expires_at:
            return

        logger.info("Fetching Reddit OAuth token...")
        try:
            response = await self.client.post(
                f"{self.base_url}{self.TOKEN_PATH}",
                auth=(self.client_id or "", self.client_secret or ""),
                data={"grant_type": "client_credentials"},
                headers={"User-Agent": self.user_agent},
                timeout=self.check_timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError("Timed out fetching Reddit access token") from e
        except httpx.TransportError as e:
            raise UpstreamError(f"Could not reach Reddit for an access token: {e}") from e

        if response.status_code in (401, 403):
            raise ChannelForbiddenError("Reddit authentication failed. Check the client credentials.")
        if response.status_code != 200:
            raise UpstreamError(f"Failed to get Reddit access token: {response.status_code}")

        payload = response.json()
        self._token = payload["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + float(payload.get("expires_in", 3600)) - 60

    async def _pace(self) -> None:
        wait = self._next_request_at - time.monotonic()
        if wait > 0:
            await self._sleep(wait)

    async def _backoff(self, attempt: int, reason: str) -> None:
        wait = self.backoff_base * (2 ** attempt)
        logger.warning(f"{reason}. Waiting {wait:.0f}s before retry {attempt + 1}/{self.max_retries}")
        await self._sleep(wait)

    async def _get(self, url: str, params: Dict[str, Any], timeout: float, channel: str) -> httpx.Response:
        """GET with exponential backoff on 429, 5xx and timeouts."""
        attempt = 0
        while True:
            await self._pace()
            try:
                response = await self.client.get(
                    url, params=params, headers=self._headers(), timeout=timeout
                )
            except httpx.TimeoutException as e:
                if attempt >= self.max_retries:
                    raise UpstreamTimeoutError(
                        f"Reddit request for r/{channel} timed out after {self.max_retries} retries"
                    ) from e
                await self._backoff(attempt, "Request timed out")
                attempt += 1
                continue
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise UpstreamError(f"Reddit API unreachable: {e}") from e
                await self._backoff(attempt, f"Transport error ({e})")
                attempt += 1
                continue

            status = response.status_code
            if status == 404 or 300 <= status < 400:
                # Banned or unknown subreddits redirect to search
                raise ChannelNotFoundError(f"Subreddit r/{channel} not found or is private")
            if status in (401, 403):
                raise ChannelForbiddenError(f"Subreddit r/{channel} is private or restricted")
            if status == 429 or status >= 500:
                if attempt >= self.max_retries:
                    raise UpstreamError(
                        f"Reddit API error {status} for r/{channel} after {self.max_retries} retries"
                    )
                reason = "Rate limited" if status == 429 else f"Reddit API error {status}"
                await self._backoff(attempt, reason)
                attempt += 1
                continue
            if status >= 400:
                raise UpstreamError(f"Reddit API error: {status}")

            self._next_request_at = time.monotonic() + self.request_delay
            return response
