from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from kline.candles.query import query_candles
from kline.models.api import ErrorOut, KlineOut, QuoteOut
from kline.storage.base import QuoteStore

log = logging.getLogger("kline_api")

router = APIRouter(prefix="/api/market")


def _store(request: Request) -> QuoteStore:
    return request.app.state.store


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# Handlers are async so they run on the event loop, interleaved with (never
# parallel to) the poller's store mutations.


@router.get("/quotes", response_model=List[QuoteOut], responses={500: {"model": ErrorOut}})
async def list_quotes(request: Request):
    try:
        quotes = _store(request).get_all_quotes()
    except Exception:
        log.exception("Failed to query latest quotes")
        return _error(500, "failed to query latest quotes")
    return [q.to_dict() for q in quotes]


@router.get(
    "/quote",
    response_model=QuoteOut,
    responses={400: {"model": ErrorOut}, 404: {"model": ErrorOut}, 500: {"model": ErrorOut}},
)
async def get_quote(
    request: Request,
    symbol: Optional[str] = Query(None, description="Symbol, e.g. btcusdt"),
):
    symbol = (symbol or "").strip().lower()
    if not symbol:
        return _error(400, "symbol is required")

    try:
        quote = _store(request).get_quote(symbol)
    except Exception:
        log.exception("Failed to query quote symbol=%s", symbol)
        return _error(500, "failed to query quote")

    if quote is None:
        return _error(404, "quote not found")
    return quote.to_dict()


@router.post("/kline/snapshot", status_code=410, response_model=ErrorOut)
async def ingest_snapshot():
    """Snapshots are recorded by the poller only."""
    return _error(410, "snapshot ingestion is handled automatically by the server")


@router.get(
    "/kline",
    response_model=KlineOut,
    responses={400: {"model": ErrorOut}, 500: {"model": ErrorOut}},
)
async def get_kline(
    request: Request,
    symbol: Optional[str] = Query(None, description="Symbol, e.g. btcusdt"),
    interval: Optional[str] = Query("5m", description="<n>m, <n>h or <n>d (plain number = minutes)"),
    limit: Optional[str] = Query(None, description="Candles to return, clamped to [50, 500], default 200"),
):
    symbol = (symbol or "").strip().lower()
    if not symbol:
        return _error(400, "symbol is required")

    try:
        result = query_candles(_store(request), symbol, interval or "5m", limit)
    except Exception:
        log.exception("Failed to query kline symbol=%s interval=%s", symbol, interval)
        return _error(500, "failed to query kline data")
    return result.to_dict()
