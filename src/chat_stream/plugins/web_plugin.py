import asyncio
import json
import logging
import urllib.error
import urllib.request
from urllib.parse import urlencode

from pydantic import BaseModel, Field

from ..tool_registry import WEB_SEARCH_TOOL_NAME, NoParameters, ToolDescriptor

logger = logging.getLogger(__name__)

INSTANT_ANSWER_URL = "https://api.duckduckgo.com/"
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:119.0) Gecko/20100101 Firefox/119.0"


class InstantSearchParameters(BaseModel):
    keyword: str = Field(
        description="A single keyword describing the topic to fetch an instant answer for."
    )


class WebPlugin:
    """Plugin for instant-answer lookups and the provider-native web search."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    def _instant_answer_url(self, keyword: str) -> str:
        query = urlencode(
            {
                "q": keyword,
                "format": "json",
                "pretty": 1,
                "no_html": 1,
                "skip_disambig": 1,
            }
        )
        return f"{INSTANT_ANSWER_URL}?{query}"

    def _fetch_json(self, url: str):
        """Fetch and decode a JSON document."""
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except (urllib.error.URLError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Instant answer fetch failed: {str(e)}") from e

    async def instant_search(self, params, assistant_message, history, abort_signal=None) -> str:
        """Fetch DuckDuckGo Instant Answer data for the first word of the keyword."""
        if abort_signal is not None and abort_signal.is_set():
            return ""

        words = params.keyword.split()
        keyword = words[0] if words else ""
        url = self._instant_answer_url(keyword)
        logger.debug(f"Fetching instant answer: {url}")
        data = await asyncio.to_thread(self._fetch_json, url)
        return json.dumps(data, indent=2, ensure_ascii=False)

    def web_search(self, params, assistant_message, history, abort_signal=None) -> str:
        # Executed by the provider itself.
        return ""

    def hook_provide_tools(self):
        return [
            ToolDescriptor(
                name="instant_search",
                title="Instant Search",
                description=(
                    "Fetches factual answers, summaries and related topics. Useful for quick "
                    "lookups, definitions, and concise explanations. Not a full web search, "
                    "returns only Instant Answer data."
                ),
                parameters=InstantSearchParameters,
                action=self.instant_search,
            ),
            ToolDescriptor(
                name=WEB_SEARCH_TOOL_NAME,
                title="Web Search",
                description=(
                    "Search the web for current information, news, or facts. Use this when "
                    "you need up-to-date information that may have changed recently."
                ),
                parameters=NoParameters,
                action=self.web_search,
            ),
        ]
