"""
API route definitions, mounted under /api.

- GET  /wallet/{address}            aggregated activity bundle (read-only)
- POST /persona/{address}           fresh aggregation + scoring + upsert
- GET  /persona/{address}           cached record, or a fresh update on miss
- GET  /persona/category/{group}    most popular contracts for a position label
- GET  /persona/average/{group}     average metric vector for a position label
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from wallet_persona.analytics.persona_contracts import parse_group
from wallet_persona.analytics.pipeline import PersonaPipeline
from wallet_persona.core.exceptions import AggregationError, InvalidAddressError, StorageError
from wallet_persona.database import WalletRecord
from wallet_persona.persona_logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_pipeline(request: Request) -> PersonaPipeline:
    """Dependency: the app-scoped pipeline built in the lifespan handler."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Persona pipeline is not initialized")
    return pipeline


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class PersonaResponse(BaseModel):
    """Stored or freshly computed wallet record."""

    address: str = Field(..., description="Checksum wallet address")
    balance: int = Field(0, description="Native balance in wei")
    distinct_contract_count: float = 0
    dex_platform_diversity: float = 0
    avg_token_holding_period: float = 0
    transaction_frequency: float = 0
    dex_volume_usd: float = 0
    nft_collections_diversity: float = 0
    explorer_score: float = Field(0, ge=0, le=10)
    diamond_score: float = Field(0, ge=0, le=10)
    whale_score: float = Field(0, ge=0, le=10)
    degen_score: float = Field(0, ge=0, le=10)
    distinct_contract_count_percentile: float = Field(0, ge=0, le=100)
    dex_platform_diversity_percentile: float = Field(0, ge=0, le=100)
    avg_token_holding_period_percentile: float = Field(0, ge=0, le=100)
    transaction_frequency_percentile: float = Field(0, ge=0, le=100)
    dex_volume_usd_percentile: float = Field(0, ge=0, le=100)
    nft_collections_diversity_percentile: float = Field(0, ge=0, le=100)
    position: str | None = Field(None, description="Top two archetypes, e.g. Whale_Diamond; null without a baseline")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: WalletRecord) -> "PersonaResponse":
        data = record.to_dict()
        data["created_at"] = record.created_at
        data["updated_at"] = record.updated_at
        return cls(**data)


class ContractFrequency(BaseModel):
    contract_address: str
    frequency: int = Field(..., ge=1)


class PopularContractsResponse(BaseModel):
    """GET /persona/category/{group} response."""

    group: str
    contracts: list[ContractFrequency] = Field(default_factory=list)


class AverageMetricsResponse(BaseModel):
    """GET /persona/average/{group} response."""

    group: str
    unique_addresses: int = Field(0, ge=0)
    average_metrics: dict[str, float] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _validated_group(group: str) -> str:
    try:
        parse_group(group)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return group


async def _run_evaluation(action: str, address: str, coro: Any) -> Any:
    try:
        return await coro
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except AggregationError as e:
        logger.error(f"{action}_failed", wallet=address, error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from e


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@router.get("/wallet/{address}")
async def get_wallet_analysis(address: str, pipeline: PersonaPipeline = Depends(get_pipeline)) -> dict[str, Any]:
    """
    Aggregate one wallet's on-chain activity without scoring.

    Returns balance, stablecoin flag, token count, recent contract calls and
    the transaction / NFT / token / DEX sub-bundles. 400 on an invalid
    address, 500 when aggregation fails as a whole.
    """
    logger.info("wallet_analysis_called", wallet=address)
    bundle = await _run_evaluation("wallet_analysis", address, pipeline.analyze(address))
    return bundle.to_dict()


@router.post("/persona/{address}", response_model=PersonaResponse)
async def update_persona(address: str, pipeline: PersonaPipeline = Depends(get_pipeline)) -> PersonaResponse:
    """Run a fresh evaluation cycle and return the stored record."""
    logger.info("persona_update_called", wallet=address)
    record = await _run_evaluation("persona_update", address, pipeline.update_persona(address))
    return PersonaResponse.from_record(record)


@router.get("/persona/{address}", response_model=PersonaResponse)
async def get_persona(address: str, pipeline: PersonaPipeline = Depends(get_pipeline)) -> PersonaResponse:
    """Return the cached record, evaluating the wallet first if it has never been seen."""
    record = await _run_evaluation("persona_get", address, pipeline.get_or_update(address))
    return PersonaResponse.from_record(record)


@router.get("/persona/category/{group}", response_model=PopularContractsResponse)
async def get_popular_contracts(
    group: str,
    limit: int = Query(1, ge=1, le=100, description="Number of contracts to return"),
    pipeline: PersonaPipeline = Depends(get_pipeline),
) -> PopularContractsResponse:
    group = _validated_group(group)
    try:
        rows = await asyncio.get_running_loop().run_in_executor(
            None, lambda: pipeline.store.popular_contracts(group, limit)
        )
    except StorageError as e:
        logger.error("persona_category_failed", group=group, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query persona contracts") from e
    return PopularContractsResponse(group=group, contracts=[ContractFrequency(**r) for r in rows])


@router.get("/persona/average/{group}", response_model=AverageMetricsResponse)
async def get_average_metrics(group: str, pipeline: PersonaPipeline = Depends(get_pipeline)) -> AverageMetricsResponse:
    group = _validated_group(group)
    try:
        result = await asyncio.get_running_loop().run_in_executor(
            None, lambda: pipeline.store.average_metrics(group)
        )
    except StorageError as e:
        logger.error("persona_average_failed", group=group, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to average persona metrics") from e
    return AverageMetricsResponse(**result)
