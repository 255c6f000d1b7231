"""In-progress ticket cache fed by periodic Jira searches.

The cache is an ordinary object owned by the application lifespan (see
``main.py``) and handed to endpoints through :func:`get_ticket_cache`. It is
read-only with respect to the database.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx
from fastapi import Request

from capacity_tracker.common.audit import utcnow
from capacity_tracker.config import settings

logger = logging.getLogger(__name__)

IN_PROGRESS_JQL = (
    'status = "Development in progress" '
    'OR status = "Development in progress - ST" '
    'OR status = "Code review in progress"'
)
SEARCH_FIELDS = ["key", "summary", "assignee", "issuetype", "customfield_10020", "sprint"]
MAX_RESULTS = 100

_SPRINT_NAME_RE = re.compile(r"name=([^,\]]+)")


@dataclass(frozen=True)
class Ticket:
    key: str
    summary: str
    assignee_email: str
    issue_type: str
    sprint: str


# ── Field extraction ────────────────────────────────────────────────

def _issue_type(fields: dict[str, Any]) -> str:
    raw = fields.get("issuetype")
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return raw.get("name") or raw.get("value") or "Unknown"
    return "Unknown"


def _sprint_name(fields: dict[str, Any]) -> str:
    """Name of the latest sprint the issue belongs to."""
    raw = fields.get("customfield_10020") or fields.get("sprint")
    if not raw:
        return "No Sprint"
    if isinstance(raw, list):
        latest = raw[-1]
        if isinstance(latest, dict) and latest.get("name"):
            return latest["name"]
        if isinstance(latest, str):
            # Legacy Jira serializes sprints as "...[id=1,name=Sprint 4,...]"
            match = _SPRINT_NAME_RE.search(latest)
            return match.group(1) if match else "Unknown Sprint"
        return "No Sprint"
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and raw.get("name"):
        return raw["name"]
    return "No Sprint"


def parse_search_response(payload: dict[str, Any]) -> dict[str, list[Ticket]]:
    """Group the issues of a search response by assignee email (lower-cased).

    Raises ``ValueError`` when the payload is not a search result object.
    Individual malformed issues are skipped.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    issues = payload.get("issues") or []
    if not isinstance(issues, list):
        raise ValueError(f"Expected \"issues\" to be a list, got {type(issues).__name__}")

    grouped: dict[str, list[Ticket]] = {}
    for issue in issues:
        if not isinstance(issue, dict):
            continue
        fields = issue.get("fields") if isinstance(issue.get("fields"), dict) else {}
        assignee = fields.get("assignee")
        email = assignee.get("emailAddress") if isinstance(assignee, dict) else None
        if not isinstance(email, str) or not email or not issue.get("key"):
            continue
        ticket = Ticket(
            key=issue["key"],
            summary=fields.get("summary") or "",
            assignee_email=email,
            issue_type=_issue_type(fields),
            sprint=_sprint_name(fields),
        )
        grouped.setdefault(email.lower(), []).append(ticket)
    return grouped


# ═════════════════════════════════════════════════════════════════════
# TicketCache
# ═════════════════════════════════════════════════════════════════════


class TicketCache:
    """Periodically refreshed map of assignee email → in-progress tickets."""

    def __init__(
        self,
        base_url: str = "",
        email: str = "",
        api_token: str = "",
        poll_interval: float = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._email = email
        self._api_token = api_token
        self.poll_interval = poll_interval
        self._transport = transport
        self._tickets: dict[str, list[Ticket]] = {}
        self._task: Optional[asyncio.Task] = None
        self.last_refreshed: Optional[datetime] = None

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "TicketCache":
        return cls(
            base_url=settings.JIRA_URL,
            email=settings.JIRA_EMAIL,
            api_token=settings.JIRA_API_TOKEN,
            poll_interval=settings.JIRA_POLL_INTERVAL_SECONDS,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self._email and self._api_token)

    # ── Accessors ───────────────────────────────────────────────────

    def tickets_for(self, email: str) -> list[Ticket]:
        return list(self._tickets.get(email.lower(), []))

    def ticket_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    # ── Refresh ─────────────────────────────────────────────────────

    async def refresh(self) -> bool:
        """Run one search and swap the cache. Returns False on failure.

        On an HTTP error or a malformed response the previous contents are kept.
        """
        if not self.enabled:
            return False

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self._email, self._api_token),
                timeout=15,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    "/rest/api/3/search",
                    json={
                        "jql": IN_PROGRESS_JQL,
                        "fields": SEARCH_FIELDS,
                        "maxResults": MAX_RESULTS,
                    },
                    headers={"Accept": "application/json"},
                )
                resp.raise_for_status()
                tickets = parse_search_response(resp.json())
        except (httpx.HTTPError, ValueError):
            logger.exception("Jira ticket refresh failed; keeping previous cache")
            return False

        self._tickets = tickets
        self.last_refreshed = utcnow()
        logger.info(
            "Ticket cache refreshed: %d tickets for %d assignees",
            sum(len(t) for t in self._tickets.values()),
            len(self._tickets),
        )
        return True

    # ── Polling lifecycle ───────────────────────────────────────────

    async def _poll(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Unexpected error in ticket refresh; polling continues")
            await asyncio.sleep(self.poll_interval)

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Jira credentials not configured; ticket integration disabled")
            return
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._poll(), name="ticket-cache-poller")
        logger.info("Ticket polling started with %ss interval", self.poll_interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Ticket poller had already failed")
        self._task = None
        logger.info("Ticket polling stopped")


# ── FastAPI dependency ──────────────────────────────────────────────

def get_ticket_cache(request: Request) -> TicketCache:
    """The cache owned by the running app; a disabled one if none was started."""
    cache = getattr(request.app.state, "ticket_cache", None)
    if cache is None:
        cache = TicketCache()
    return cache
