"""FastAPI application for the pooled fund accounting engine.

This module provides a minimal HTTP API service for:
- GET /health - Service and (optional) database connectivity check
- /fund/* - Valuation, issuance, redemption and fee settlement (see api/routes/fund.py)

Requirements:
- DATABASE_URL is optional; without it the fund is kept in memory
- No authentication (local network only)
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from api.routes import fund

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Fund Engine API",
    description="API for pooled fund valuation, share issuance and redemption",
    version="1.0.0",
)

app.include_router(fund.router)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint.

    Returns:
        JSON with service status, fund id and persistence information.

    Raises:
        HTTPException: If the configured database cannot be reached.
    """
    manager = fund._get_fund_manager()  # noqa: SLF001
    stores = manager.state_store

    if stores is None or not hasattr(stores, "_get_engine"):
        return {
            "status": "ok",
            "fund_id": manager.config.fund_id,
            "database": {"configured": stores is not None},
        }

    try:
        engine = stores._get_engine()  # noqa: SLF001
        _, text = stores._require_sqlalchemy()  # noqa: SLF001

        with engine.begin() as conn:
            result = conn.execute(
                text(
                    """
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_name = 'fund_state'
                    """
                )
            ).scalar()

        return {
            "status": "ok",
            "fund_id": manager.config.fund_id,
            "database": {
                "configured": True,
                "connected": True,
                "fund_state_table_exists": bool(result),
            },
        }

    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "error",
                "database": {
                    "configured": True,
                    "connected": False,
                    "error": str(e),
                },
            },
        ) from e


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
