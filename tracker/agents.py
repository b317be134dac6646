"""User-agent classification backed by the ``user-agents`` library."""

from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from user_agents import parse

from tracker.models.visits import AgentInfo


@lru_cache(maxsize=1000)
def _classify(user_agent: str) -> AgentInfo:
    ua = parse(user_agent)
    if ua.is_bot:
        kind = "robot"
    elif ua.is_tablet:
        kind = "tablet"
    elif ua.is_mobile:
        kind = "mobile"
    elif ua.is_pc:
        kind = "desktop"
    else:
        kind = "other"
    return AgentInfo(
        is_robot=ua.is_bot,
        browser_name=ua.browser.family,
        platform=ua.os.family,
        device=ua.device.family,
        device_kind=kind,
    )


class UserAgentClassifier:
    """Classifies requests by their User-Agent header.

    Only the user-agent string is inspected; ``headers`` is accepted so other
    classifiers can use client hints.
    """

    def classify(self, user_agent: str, headers: Mapping[str, Any] | None = None) -> AgentInfo:
        return _classify(user_agent or "")
