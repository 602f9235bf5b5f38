"""HTTP boundary for the planner: camelCase JSON, decimals as strings."""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Iterable, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .config import TrinityConfig, load_config
from .errors import InvalidChain, InvalidSecurityLevel
from .fee_history import FeeHistoryDB
from .models import FeeEstimate, OperationKind
from .planner import VaultDeploymentPlanner

API_PREFIX = "/api/chain"


class PlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    primary_chain: str = Field(alias="primaryChain")
    vault_type: Optional[str] = Field(default=None, alias="vaultType")
    asset_amount: Optional[str] = Field(default=None, alias="assetAmount")
    asset_type: Optional[str] = Field(default=None, alias="assetType")
    security_level: int = Field(default=3, alias="securityLevel")
    operation_type: str = Field(default=OperationKind.VAULT_CREATION, alias="operationType")


class ValidateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    primary_chain: str = Field(alias="primaryChain")
    user_balance: Optional[Decimal] = Field(default=None, alias="userBalance")
    operation_type: str = Field(default=OperationKind.VAULT_CREATION, alias="operationType")


async def _invalid_chain(request: Request, exc: InvalidChain):
    return JSONResponse({"error": str(exc), "validChains": exc.valid}, status_code=400)


async def _invalid_security_level(request: Request, exc: InvalidSecurityLevel):
    return JSONResponse({"error": str(exc)}, status_code=400)


def create_app(
    planner: Optional[VaultDeploymentPlanner] = None,
    history: Optional[FeeHistoryDB] = None,
    config: Optional[TrinityConfig] = None
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        planner: Planner instance (built from config when None)
        history: Fee history store (opened from config when None)
        config: Planner configuration (loaded from YAML/env when None)

    Returns:
        FastAPI app with all routes under /api/chain
    """
    if config is None:
        config = planner.config if planner is not None else load_config()
    if planner is None:
        planner = VaultDeploymentPlanner.from_config(config)
    if history is None:
        history = FeeHistoryDB(config.history.get('db_path', 'fee_history.db'))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await planner.close()
        history.close()

    app = FastAPI(title="Trinity Planner", description="Multi-chain vault deployment planner", lifespan=lifespan)
    app.state.planner = planner
    app.state.history = history

    app.add_exception_handler(InvalidChain, _invalid_chain)
    app.add_exception_handler(InvalidSecurityLevel, _invalid_security_level)

    async def record_fallbacks(estimates: Iterable[FeeEstimate]):
        """Log every fallback estimate into the errors table"""
        for estimate in estimates:
            if estimate.is_fallback:
                await run_in_threadpool(
                    history.record_error, "estimate_fallback", estimate.fallback_reason, estimate.chain
                )

    router = APIRouter(prefix=API_PREFIX)

    @router.get("/fees/compare")
    async def compare_fees(operation_type: str = Query(OperationKind.VAULT_CREATION, alias="operationType")):
        comparison = await planner.compare(operation_type)
        await run_in_threadpool(history.record_comparison, comparison)
        await record_fallbacks(comparison.estimates.values())
        return comparison.to_dict()

    @router.get("/fees/recommendation/{operation_type}")
    async def fee_recommendation(operation_type: str):
        recommendation = await planner.recommend_for_operation(operation_type)
        return recommendation.to_dict()

    @router.get("/fees/history/{chain}")
    async def fee_history(chain: str, limit: int = Query(20, ge=1, le=500)):
        chain_id = planner.config.validate_chain(chain)
        estimates = await run_in_threadpool(history.get_recent_estimates, chain_id, limit)
        return {"chain": chain_id, "estimates": estimates}

    @router.get("/fees/{chain}")
    async def chain_fee(chain: str, operation_type: str = Query(OperationKind.VAULT_CREATION, alias="operationType")):
        estimate = await planner.estimator.estimate(chain, operation_type)
        await record_fallbacks([estimate])
        return estimate.to_dict()

    @router.post("/plan")
    async def create_plan(body: PlanRequest):
        plan = await planner.plan(
            body.primary_chain,
            body.operation_type,
            body.security_level,
            vault_type=body.vault_type,
            asset_type=body.asset_type,
            asset_amount=body.asset_amount,
        )
        await run_in_threadpool(history.record_plan, plan)
        await record_fallbacks(plan.fee_estimates.values())
        return plan.to_dict()

    @router.post("/validate")
    async def validate_selection(body: ValidateRequest):
        validation = await planner.validate_selection(
            body.primary_chain,
            user_balance=body.user_balance,
            operation_kind=body.operation_type,
        )
        return validation.to_dict()

    @router.get("/recommend")
    async def recommend(
        prefer_speed: bool = Query(False, alias="preferSpeed"),
        prefer_cost: bool = Query(False, alias="preferCost"),
        prefer_security: bool = Query(False, alias="preferSecurity")
    ):
        recommendation = await planner.recommend(
            prefer_speed=prefer_speed,
            prefer_cost=prefer_cost,
            prefer_security=prefer_security,
        )
        return recommendation.to_dict()

    @router.get("/info/{chain}")
    async def chain_info(chain: str):
        return planner.chain_info(chain).to_dict()

    @router.get("/stats")
    async def stats():
        return await run_in_threadpool(history.get_statistics)

    app.include_router(router)
    logger.info(f"🌐 API ready under {API_PREFIX}")
    return app
