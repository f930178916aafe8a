"""FastAPI app factory for the CoffeeCoin ledger API."""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .auth import require_admin, require_wallet
from .config import get_config
from .exceptions import ChainTransactionError, InvalidInputError, LedgerError
from .service import LedgerService, require_address

logger = logging.getLogger(__name__)


@lru_cache()
def get_service() -> LedgerService:
    """Dependency provider returning the shared LedgerService instance."""
    return LedgerService.from_config(get_config())


# API models
class EarnPointsRequest(BaseModel):
    pointsToEarn: Any = None


class RedemptionRequest(BaseModel):
    rewardId: Optional[str] = None
    pointsBurned: Any = None
    burnTransactionHash: Optional[str] = None


class MintRequest(BaseModel):
    recipientAddress: Optional[str] = None
    amount: Any = None


class DripRequest(BaseModel):
    recipientAddress: Optional[str] = None


def _parse_query_int(raw: Optional[str], default: int, name: str) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidInputError(f"Invalid '{name}' parameter. Must be a number.", field=name)


# ----------------------------------------
# Public and user routes
# ----------------------------------------

router = APIRouter(tags=["coffeecoin"])


@router.get("/info")
def token_info(service: LedgerService = Depends(get_service)):
    return service.token_info()


@router.get("/total-supply")
def total_supply(service: LedgerService = Depends(get_service)):
    return {"totalSupply": str(service.total_supply())}


@router.get("/balance/{address}")
def balance(address: str, service: LedgerService = Depends(get_service)):
    return {"address": address, "balance": str(service.balance_of(address))}


@router.post("/earn-points")
def earn_points(
    payload: EarnPointsRequest,
    wallet: str = Depends(require_wallet),
    service: LedgerService = Depends(get_service),
):
    result = service.earn_points(wallet, payload.pointsToEarn)
    return {
        "message": f"{result.amount} CoffeeCoins successfully minted!",
        "transactionHash": result.transaction_hash,
        "recipientAddress": result.recipient_address,
        "newBalance": str(result.new_balance),
        "ethDripStatus": result.eth_drip_status,
    }


@router.post("/record-redemption")
def record_redemption(
    payload: RedemptionRequest,
    wallet: str = Depends(require_wallet),
    service: LedgerService = Depends(get_service),
):
    record = service.record_redemption(
        payload.rewardId, payload.pointsBurned, payload.burnTransactionHash)
    return {
        "message": f"Redemption for '{record.reward_id}' recorded.",
        "voucherCode": record.voucher_code,
        "rewardId": record.reward_id,
        "pointsBurned": str(record.points_burned),
    }


@router.get("/transaction-history")
def transaction_history(
    wallet: str = Depends(require_wallet),
    service: LedgerService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return [event.to_dict() for event in service.transaction_history(wallet)]


# ----------------------------------------
# Admin routes
# ----------------------------------------

admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@admin_router.get("/contract-overview")
def contract_overview(service: LedgerService = Depends(get_service)):
    return service.contract_overview().to_dict()


@admin_router.get("/contract-interactions")
def contract_interactions(
    page: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    service: LedgerService = Depends(get_service),
):
    interactions = service.recent_interactions(
        page=_parse_query_int(page, 1, "page"),
        offset=_parse_query_int(offset, 10, "offset"),
    )
    return [tx.to_dict() for tx in interactions]


@admin_router.get("/mint-distribution")
def mint_distribution(
    count: Optional[str] = Query(None),
    top: Optional[str] = Query(None),
    service: LedgerService = Depends(get_service),
):
    buckets = service.mint_distribution(
        count=_parse_query_int(count, 50, "count"),
        top=_parse_query_int(top, 7, "top"),
    )
    return [bucket.to_dict() for bucket in buckets]


@admin_router.post("/mint")
def admin_mint(payload: MintRequest, service: LedgerService = Depends(get_service)):
    if not payload.recipientAddress or payload.amount is None:
        raise InvalidInputError("Missing 'recipientAddress' or 'amount' in request body.")
    logger.info(f"Admin attempting to mint {payload.amount} tokens to {payload.recipientAddress}")
    tx_hash = service.mint(payload.recipientAddress, payload.amount)
    return {
        "success": True,
        "message": f"Successfully initiated minting of {payload.amount} tokens to {payload.recipientAddress}.",
        "transactionHash": tx_hash,
    }


@admin_router.get("/user/{address}/balance")
def admin_user_balance(address: str, service: LedgerService = Depends(get_service)):
    return {"address": address, "balance": str(service.balance_of(address))}


@admin_router.get("/user/{address}/history")
def admin_user_history(address: str, service: LedgerService = Depends(get_service)):
    return [event.to_dict() for event in service.transaction_history(address)]


@admin_router.post("/faucet/drip")
def faucet_drip(payload: DripRequest, service: LedgerService = Depends(get_service)):
    if not payload.recipientAddress:
        raise InvalidInputError("Missing 'recipientAddress' in request body.", field="recipientAddress")
    require_address(payload.recipientAddress, "recipientAddress")

    logger.info(f"Admin attempting manual ETH drip to {payload.recipientAddress}")
    result = service.attempt_drip(payload.recipientAddress)
    if result.dripped:
        return {"success": True, **result.to_dict()}

    status_code = 200
    if "insufficient funds" in result.message:
        status_code = 503
    elif result.message.startswith("Not eligible"):
        status_code = 409
    return JSONResponse(status_code=status_code, content={"success": False, **result.to_dict()})


# ----------------------------------------
# Error mapping
# ----------------------------------------

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return _error(400, str(exc))


async def chain_error_handler(request: Request, exc: ChainTransactionError):
    logger.error(f"On-chain failure on {request.url.path}: {exc}")
    extra = {"ethDripStatus": exc.eth_drip_status} if exc.eth_drip_status else {}
    return _error(500, str(exc), **extra)


async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.error(f"Request to {request.url.path} failed: {exc}")
    return _error(500, str(exc))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="CoffeeCoin Ledger API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"message": "CoffeeCoin ledger API running"}

    app.include_router(router)
    app.include_router(admin_router)

    app.add_exception_handler(InvalidInputError, invalid_input_handler)
    app.add_exception_handler(ChainTransactionError, chain_error_handler)
    app.add_exception_handler(LedgerError, ledger_error_handler)

    return app


# For uvicorn, expose `app` at module level
app = create_app()
