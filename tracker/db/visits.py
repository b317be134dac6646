"""Visit repository module."""

from datetime import UTC, datetime
from typing import Any

from psycopg.types.json import Json

from tracker.db.core import get_connection
from tracker.models.visits import VisitRecord

_VISIT_COLUMNS = """
    session_id, ip_address, access_type, geo_location_id, request_uri, query,
    referrer_uri, user_agent, headers, browser, platform, device, device_kind
"""


async def insert_visit(record: VisitRecord) -> None:
    async with get_connection() as conn:
        await conn.execute(
            f"""
            INSERT INTO visits ({_VISIT_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                record.session_id,
                record.ip_address,
                record.access_type,
                record.geo_location_id,
                record.request_uri,
                record.query,
                record.referrer_uri,
                record.user_agent,
                Json(record.headers),
                record.browser,
                record.platform,
                record.device,
                record.device_kind,
            ),
        )


def _row_to_entry(row) -> dict[str, Any]:
    (session_id, ip_address, access_type, geo_location_id, request_uri, query,
     referrer_uri, user_agent, headers, browser, platform, device, device_kind,
     created_at) = row
    return {
        "visit": {
            "session_id": session_id,
            "ip_address": ip_address,
            "access_type": access_type,
            "geo_location_id": geo_location_id,
            "request_uri": request_uri,
            "query": query,
            "referrer_uri": referrer_uri,
            "user_agent": user_agent,
            "headers": headers,
            "browser": browser,
            "platform": platform,
            "device": device,
            "device_kind": device_kind,
        },
        "timestamp": created_at.astimezone(UTC).isoformat(),
    }


async def fetch_visits(
    ip_address: str | None = None,
    before: datetime | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    """Fetch the most recent visits, newest first.

    ``since`` bounds the window from below (inclusive), ``before`` from
    above (exclusive).
    """
    clauses = ["created_at < %s"]
    params: list[Any] = [before or datetime.now(UTC)]
    if since is not None:
        clauses.append("created_at >= %s")
        params.append(since)
    if ip_address:
        clauses.append("ip_address = %s")
        params.append(ip_address)
    where = " AND ".join(clauses)
    sql = f"""
        SELECT {_VISIT_COLUMNS}, created_at
        FROM visits
        WHERE {where}
        ORDER BY created_at DESC
        LIMIT %s
    """
    params.append(limit)
    async with get_connection() as conn:
        cur = await conn.execute(sql, tuple(params))
        rows = await cur.fetchall()
        return [_row_to_entry(row) for row in rows]


async def fetch_last_visit(ip_address: str) -> dict[str, Any] | None:
    """Return the newest visit recorded for ``ip_address``, if any."""
    async with get_connection() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_VISIT_COLUMNS}, created_at
            FROM visits
            WHERE ip_address = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (ip_address,),
        )
        row = await cur.fetchone()
        return _row_to_entry(row) if row else None


class PostgresVisitRecorder:
    async def persist(self, record: VisitRecord) -> None:
        await insert_visit(record)
