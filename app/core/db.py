"""Helpers for business-scoped psycopg connections."""

from __future__ import annotations

import logging

import psycopg

from .business_context import get_current_business_id

logger = logging.getLogger(__name__)


def apply_business_settings(conn: psycopg.Connection, business_id: str | None = None) -> None:
    """Set ``app.business_id`` on ``conn`` so row-level policies can use it."""

    effective = get_required_business_id(business_id)
    try:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT set_config('app.business_id', %s, false)",
                (effective,),
            )
    except psycopg.Error:
        logger.exception("Failed to apply business settings to connection")
        raise


def get_required_business_id(business_id: str | None = None) -> str:
    """Return ``business_id`` or the one of the current request, else raise."""

    effective = business_id or get_current_business_id()
    if not effective:
        raise RuntimeError("Business context missing")
    return str(effective)
