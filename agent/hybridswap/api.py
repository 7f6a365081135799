"""Swap API (FastAPI)."""

import asyncio

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .errors import (
    PriceFeedError,
    QuoteUnavailable,
    SubmissionTimeout,
    SwapError,
    TransactionReverted,
    UserRejectedSignature,
)
from .session import SwapSession
from .types import (
    CandleModel,
    InputRequest,
    PendingSubmission,
    QuoteResponse,
    SelectPairResponse,
    SubmissionModel,
)


def _http_error(e: SwapError) -> HTTPException:
    if isinstance(e, SubmissionTimeout):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, (TransactionReverted, PriceFeedError)):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, QuoteUnavailable):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, UserRejectedSignature):
        return HTTPException(status_code=400, detail="Transaction rejected")
    return HTTPException(status_code=400, detail=str(e))


def _submission_model(session: SwapSession, sub: PendingSubmission) -> SubmissionModel:
    link = session.executor.tracker.explorer_link(sub.transaction_id) if session.executor else None
    return SubmissionModel(
        transaction_id=sub.transaction_id,
        label=sub.label,
        submitted_at=sub.submitted_at,
        status=sub.status,
        error=sub.error,
        explorer_url=link,
    )


def create_app(session: SwapSession, lifespan=None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(title="HybridSwap Agent", version="0.1.0", lifespan=lifespan)
    background: set[asyncio.Task] = set()

    # CORS for Next.js frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/config")
    def get_config():
        config = session.config
        return {
            "chain_id": config.chain_id,
            "quoter": config.quoter_address,
            "router": config.router_address,
            "permit2": config.permit2_address,
            "otc": config.otc_address,
            "slippage_bps": config.slippage_bps,
            "inverted_hop_correction": config.inverted_hop_correction,
        }

    @app.get("/pairs")
    def get_pairs():
        return [
            {
                "pair_id": p.pair_id,
                "kind": p.kind,
                "token": p.token,
                "intermediate": p.intermediate,
                "active": p.pair_id == session.pair.pair_id,
            }
            for p in session.config.pairs
        ]

    @app.post("/pairs/{pair_id}/select", response_model=SelectPairResponse)
    async def select_pair(pair_id: str):
        try:
            enabled = await session.select_pair(pair_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown pair: {pair_id}")
        return SelectPairResponse(pair_id=pair_id, quoting_enabled=enabled, error=session.last_error)

    @app.post("/input")
    async def set_input(request: InputRequest):
        if request.amount < 0:
            raise HTTPException(status_code=400, detail="Amount must not be negative")
        intent = await session.set_input(request.direction, request.amount, request.slippage_bps)
        return {
            "direction": intent.direction,
            "input_asset": intent.input_asset,
            "output_asset": intent.output_asset,
            "input_amount": str(intent.input_amount),
            "approval_state": session.approval_state,
        }

    @app.get("/quote")
    async def get_quote():
        await session.debouncer.wait()
        if session.current_quote is None or session.intent is None:
            return {"quote": None, "error": session.last_error}
        return {"quote": QuoteResponse.from_quote(session.current_quote, session.intent.slippage_bps), "error": None}

    @app.get("/approval")
    async def get_approval():
        try:
            state = await session.refresh_approval()
        except SwapError as e:
            raise _http_error(e)
        return {"approval_state": state}

    @app.post("/swap", response_model=SubmissionModel)
    async def swap():
        try:
            submission = await session.submit()
        except SwapError as e:
            raise _http_error(e)
        task = asyncio.create_task(session.track(submission))
        background.add(task)
        task.add_done_callback(background.discard)
        return _submission_model(session, submission)

    @app.get("/submissions", response_model=list[SubmissionModel])
    def get_submissions():
        if session.executor is None:
            return []
        return [_submission_model(session, s) for s in session.executor.tracker.submissions.values()]

    @app.get("/price/series")
    def get_price_series():
        sync = session.price_sync
        if sync is None:
            return {"state": "idle", "candles": [], "error": None}
        return {
            "state": sync.state,
            "candles": [CandleModel(**vars(c)) for c in sync.series.candles],
            "price_change": sync.series.price_change(),
            "error": sync.last_error,
        }

    @app.get("/balance/{asset}")
    async def get_balance(asset: str):
        return {"asset": asset, "balance": str(await session.balance_of(asset))}

    @app.get("/status")
    def get_status():
        return {
            "pair_id": session.pair.pair_id,
            "quoting_enabled": session.quoting_enabled,
            "approval_state": session.approval_state,
            "last_error": session.last_error,
        }

    return app
