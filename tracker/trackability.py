"""Decides whether a request is recorded as a visit.

The decision is an ordered chain of named checks. Evaluation stops at the
first check that fails, so cheap checks run before pattern matching.
"""

from collections.abc import Callable

from tracker.matching import ip_not_in_any_range, matches_any
from tracker.models.visits import AgentInfo, RequestContext, TrackingConfig

TrackingCheck = Callable[[RequestContext, AgentInfo, TrackingConfig], bool]


def tracking_enabled(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    return config.tracking_enabled


def ip_is_trackable(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    if not config.excluded_ip_ranges:
        return True
    return ip_not_in_any_range(ctx.client_ip, config.excluded_ip_ranges)


def robot_is_trackable(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    return config.track_robots or not agent.is_robot


def route_is_trackable(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    # Requests that did not resolve to a named route are never tracked.
    if not ctx.route_name:
        return False
    if not config.excluded_route_patterns:
        return True
    return not matches_any(config.excluded_route_patterns, ctx.route_name)


def path_is_trackable(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    if not config.excluded_path_patterns or not ctx.path:
        return True
    return not matches_any(config.excluded_path_patterns, ctx.path)


TRACKING_CHECKS: tuple[tuple[str, TrackingCheck], ...] = (
    ("status", tracking_enabled),
    ("ip", ip_is_trackable),
    ("robot", robot_is_trackable),
    ("route", route_is_trackable),
    ("path", path_is_trackable),
)


def first_failed_check(
    ctx: RequestContext,
    agent: AgentInfo,
    config: TrackingConfig,
) -> str | None:
    """Return the name of the first failing check, or None if all pass."""
    for name, check in TRACKING_CHECKS:
        if not check(ctx, agent, config):
            return name
    return None


def should_track(ctx: RequestContext, agent: AgentInfo, config: TrackingConfig) -> bool:
    return first_failed_check(ctx, agent, config) is None
