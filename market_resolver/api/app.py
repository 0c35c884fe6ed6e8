"""
Market Resolver: FastAPI Application
Exposes spot fallback, consensus, candles and single-market lookups over HTTP.
"""
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from market_resolver.config.settings import get_settings
from market_resolver.data.errors import (
    AllProvidersFailedError,
    InputValidationError,
    MarketDataError,
    NoQuotesError,
    OperationCancelledError,
)
from market_resolver.data.market_service import MarketInfoService, get_market_service
from market_resolver.data.models import (
    AggregateTrade,
    AveragePrice,
    BookTicker,
    CandleInterval,
    CandleSeries,
    ConsensusResult,
    DexFeed,
    DexPair,
    ExchangeInfo,
    OrderBook,
    RequestPolicy,
    SpotPriceResult,
    Ticker24h,
    Trade,
)
from market_resolver.data.resolver import MarketDataResolver, get_resolver
from market_resolver.utils.helpers import utc_now
from market_resolver.utils.logger import get_logger, setup_logging

logger = get_logger("api")

app_state: Dict[str, Any] = {
    "instance_id": str(uuid.uuid4())[:8],
    "started_at": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    setup_logging()
    settings = get_settings()
    app_state["started_at"] = utc_now().isoformat()
    logger.info(
        "market_resolver_starting",
        version=settings.version,
        instance=app_state["instance_id"],
        providers=settings.providers.default_providers,
    )
    yield
    logger.info("market_resolver_shutting_down")


app = FastAPI(
    title="Market Resolver",
    description="Multi-provider market data resolution with fallback and consensus",
    version=get_settings().version,
    lifespan=lifespan,
)


# ─── Error mapping ──────────────────────────────────────────────

@app.exception_handler(InputValidationError)
async def _input_error(request: Request, exc: InputValidationError):
    return JSONResponse(status_code=422, content={"error": "validation_error", "detail": str(exc)})


@app.exception_handler(AllProvidersFailedError)
@app.exception_handler(NoQuotesError)
async def _exhausted(request: Request, exc: MarketDataError):
    attempts = [a.model_dump(mode="json") for a in getattr(exc, "attempts", [])]
    return JSONResponse(
        status_code=502,
        content={"error": type(exc).__name__, "detail": str(exc), "attempts": attempts},
    )


@app.exception_handler(OperationCancelledError)
async def _cancelled(request: Request, exc: OperationCancelledError):
    return JSONResponse(status_code=503, content={"error": "cancelled", "detail": str(exc)})


@app.exception_handler(MarketDataError)
async def _provider_error(request: Request, exc: MarketDataError):
    logger.warning("api_provider_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content={"error": type(exc).__name__, "detail": str(exc)})


def request_policy(
    timeout_ms: Optional[int] = Query(None),
    retries: Optional[int] = Query(None),
    retry_delay_ms: Optional[int] = Query(None),
) -> Optional[RequestPolicy]:
    """Optional per-request policy override; unset fields keep the configured defaults."""
    overrides = {
        k: v
        for k, v in {"timeout_ms": timeout_ms, "retries": retries, "retry_delay_ms": retry_delay_ms}.items()
        if v is not None
    }
    if not overrides:
        return None
    defaults = get_settings().providers
    try:
        return RequestPolicy(
            **{
                "timeout_ms": defaults.timeout_ms,
                "retries": defaults.retries,
                "retry_delay_ms": defaults.retry_delay_ms,
                **overrides,
            }
        )
    except ValidationError as e:
        raise InputValidationError(f"Invalid request policy: {e.errors()[0]['msg']}") from e


# ─── Health ─────────────────────────────────────────────────────

@app.get("/healthz", tags=["System"])
async def health_check():
    settings = get_settings()
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.version,
        "instance_id": app_state["instance_id"],
        "started_at": app_state["started_at"],
        "timestamp": utc_now().isoformat(),
    }


# ─── Resolution ─────────────────────────────────────────────────

@app.get("/api/v1/price/{base}/{quote}", response_model=SpotPriceResult, tags=["Resolution"])
async def spot_price(
    base: str,
    quote: str,
    providers: Optional[List[str]] = Query(None),
    include_attempts: bool = True,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    resolver: MarketDataResolver = Depends(get_resolver),
):
    return await resolver.resolve_spot_price(
        base, quote, providers=providers, policy=policy, include_attempts=include_attempts
    )


@app.get("/api/v1/consensus/{base}/{quote}", response_model=ConsensusResult, tags=["Resolution"])
async def consensus_price(
    base: str,
    quote: str,
    providers: Optional[List[str]] = Query(None),
    policy: Optional[RequestPolicy] = Depends(request_policy),
    resolver: MarketDataResolver = Depends(get_resolver),
):
    return await resolver.resolve_consensus(base, quote, providers=providers, policy=policy)


@app.get("/api/v1/candles/{base}/{quote}", response_model=CandleSeries, tags=["Resolution"])
async def candles(
    base: str,
    quote: str,
    interval: str = CandleInterval.H1.value,
    limit: int = 200,
    providers: Optional[List[str]] = Query(None),
    policy: Optional[RequestPolicy] = Depends(request_policy),
    resolver: MarketDataResolver = Depends(get_resolver),
):
    return await resolver.resolve_candles(
        base, quote, interval=interval, limit=limit, providers=providers, policy=policy
    )


# ─── Binance US single-market ───────────────────────────────────

@app.get("/api/v1/binance/exchange-info", response_model=ExchangeInfo, tags=["Binance US"])
async def exchange_info(
    symbol: Optional[str] = None,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.exchange_info(symbol, policy=policy)


@app.get("/api/v1/binance/order-book/{symbol}", response_model=OrderBook, tags=["Binance US"])
async def order_book(
    symbol: str,
    limit: int = 100,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.order_book(symbol, limit, policy=policy)


@app.get("/api/v1/binance/ticker-24h", response_model=List[Ticker24h], tags=["Binance US"])
async def ticker_24h(
    symbol: Optional[str] = None,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.ticker_24h(symbol, policy=policy)


@app.get("/api/v1/binance/trades/{symbol}", response_model=List[Trade], tags=["Binance US"])
async def recent_trades(
    symbol: str,
    limit: int = 100,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.recent_trades(symbol, limit, policy=policy)


@app.get("/api/v1/binance/agg-trades/{symbol}", response_model=List[AggregateTrade], tags=["Binance US"])
async def aggregate_trades(
    symbol: str,
    limit: int = 100,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.aggregate_trades(symbol, limit, policy=policy)


@app.get("/api/v1/binance/book-ticker", response_model=List[BookTicker], tags=["Binance US"])
async def book_ticker(
    symbol: Optional[str] = None,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.book_ticker(symbol, policy=policy)


@app.get("/api/v1/binance/avg-price/{symbol}", response_model=AveragePrice, tags=["Binance US"])
async def average_price(
    symbol: str,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.average_price(symbol, policy=policy)


# ─── DexScreener ────────────────────────────────────────────────

@app.get("/api/v1/dex/search", response_model=List[DexPair], tags=["DEX"])
async def dex_search(
    q: str,
    limit: int = 10,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.dex_search(q, limit, policy=policy)


@app.get("/api/v1/dex/pairs/{chain_id}/{pair_address}", response_model=List[DexPair], tags=["DEX"])
async def dex_pair(
    chain_id: str,
    pair_address: str,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.dex_pair(chain_id, pair_address, policy=policy)


@app.get("/api/v1/dex/tokens/{token_address}", response_model=List[DexPair], tags=["DEX"])
async def dex_token_pairs(
    token_address: str,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.dex_token_pairs(token_address, policy=policy)


@app.get("/api/v1/dex/profiles", response_model=DexFeed, tags=["DEX"])
async def dex_token_profiles(
    limit: int = 20,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.dex_token_profiles(limit, policy=policy)


@app.get("/api/v1/dex/boosts", response_model=DexFeed, tags=["DEX"])
async def dex_boosts(
    mode: str = "latest",
    limit: int = 20,
    policy: Optional[RequestPolicy] = Depends(request_policy),
    service: MarketInfoService = Depends(get_market_service),
):
    return await service.dex_boosts(mode, limit, policy=policy)
