"""Concurrent quote selection across candidate pools.

Every candidate is simulated at once; whatever resolves before the timeout is
ranked and the rest are cancelled. A failing candidate is dropped on its own
and never fails the whole selection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from loguru import logger

from flashnet_paths.core.clients.AmmClient import AmmClient
from flashnet_paths.core.clients.models import Pool
from flashnet_paths.core.config import get_quote_timeout
from flashnet_paths.core.errors import NoLiquidity
from flashnet_paths.core.utils.cpmm import amount_in_for_output


@dataclass(frozen=True)
class Quote:
    pool_id: str
    asset_in: str
    asset_out: str
    amount_in: int
    amount_out: int
    fee_paid: int
    price_impact_pct: Decimal
    execution_price: Decimal | None = None
    warning: str | None = None


def _best_output_key(quote: Quote) -> tuple[Any, ...]:
    return (-quote.amount_out, quote.price_impact_pct, quote.pool_id)


def _cheapest_input_key(quote: Quote) -> tuple[Any, ...]:
    return (quote.amount_in, quote.price_impact_pct, quote.pool_id)


async def gather_quotes(
    pool_ids: list[str],
    evaluate: Callable[[str], Awaitable[Quote]],
    *,
    timeout_s: float,
) -> tuple[list[Quote], dict[str, str]]:
    """Evaluate every pool concurrently; return usable quotes and per-pool errors."""
    tasks = {
        asyncio.ensure_future(evaluate(pool_id)): pool_id for pool_id in dict.fromkeys(pool_ids)
    }
    if not tasks:
        return [], {}

    done, pending = await asyncio.wait(tasks, timeout=timeout_s)
    errors: dict[str, str] = {}
    for task in pending:
        task.cancel()
        errors[tasks[task]] = f"timed out after {timeout_s:.1f}s"
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    quotes: list[Quote] = []
    for task in done:
        pool_id = tasks[task]
        if task.cancelled():
            errors[pool_id] = "cancelled"
            continue
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Quote for pool {pool_id} failed: {exc}")
            errors[pool_id] = str(exc)
            continue
        quote = task.result()
        if quote.amount_out <= 0:
            errors[pool_id] = "zero output"
            continue
        quotes.append(quote)
    return quotes, errors


class QuoteSelector:
    def __init__(self, client: AmmClient, *, timeout_s: float | None = None):
        self.client = client
        self.timeout_s = timeout_s if timeout_s is not None else get_quote_timeout()

    async def candidate_pools(self, asset_in: str, asset_out: str) -> list[Pool]:
        """Tradable pools holding both assets, in either orientation."""
        forward, reverse = await asyncio.gather(
            self.client.list_pools(asset_a=asset_in, asset_b=asset_out),
            self.client.list_pools(asset_a=asset_out, asset_b=asset_in),
        )
        pools: dict[str, Pool] = {}
        for pool in [*forward.pools, *reverse.pools]:
            if pool.is_tradable:
                pools.setdefault(pool.pool_id, pool)
        return list(pools.values())

    async def simulate(
        self,
        pool_id: str,
        asset_in: str,
        asset_out: str,
        amount_in: int,
        *,
        integrator_fee_bps: int = 0,
    ) -> Quote:
        sim = await self.client.simulate_swap(
            {
                "poolId": pool_id,
                "assetInAddress": asset_in,
                "assetOutAddress": asset_out,
                "amountIn": str(amount_in),
                "integratorBps": integrator_fee_bps,
            }
        )
        return Quote(
            pool_id=pool_id,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount_in,
            amount_out=sim.amount_out,
            fee_paid=sim.fee_paid_asset_in,
            price_impact_pct=sim.price_impact_pct,
            execution_price=sim.execution_price,
            warning=sim.warning_message,
        )

    async def best_quote(
        self,
        asset_in: str,
        asset_out: str,
        amount_in: int,
        pool_ids: list[str] | None = None,
        *,
        integrator_fee_bps: int = 0,
    ) -> Quote:
        """Highest output for ``amount_in``; ties go to lower impact, then pool id."""
        if pool_ids is None:
            pool_ids = [p.pool_id for p in await self.candidate_pools(asset_in, asset_out)]

        async def _evaluate(pool_id: str) -> Quote:
            return await self.simulate(
                pool_id,
                asset_in,
                asset_out,
                amount_in,
                integrator_fee_bps=integrator_fee_bps,
            )

        quotes, errors = await gather_quotes(pool_ids, _evaluate, timeout_s=self.timeout_s)
        if not quotes:
            raise NoLiquidity(
                f"No pool can swap {amount_in} {asset_in[:8]}... for {asset_out[:8]}...",
                details={"pool_errors": errors},
            )
        best = min(quotes, key=_best_output_key)
        logger.debug(
            f"Selected pool {best.pool_id} for {amount_in} in -> {best.amount_out} out "
            f"({len(quotes)}/{len(pool_ids)} candidates quoted)"
        )
        return best

    async def best_quote_for_output(
        self,
        asset_in: str,
        asset_out: str,
        amount_out_needed: int,
        pools: list[Pool] | None = None,
        *,
        integrator_fee_bps: int = 0,
    ) -> Quote:
        """Cheapest input whose simulated output covers ``amount_out_needed``."""
        if pools is None:
            pools = await self.candidate_pools(asset_in, asset_out)
        by_id = {p.pool_id: p for p in pools}

        async def _evaluate(pool_id: str) -> Quote:
            pool = by_id[pool_id]
            if not (pool.reserve_a and pool.reserve_b):
                pool = await self.client.get_pool(pool_id)
            reserve_in, reserve_out = pool.reserves_for(asset_in)
            amount_in, _ = amount_in_for_output(
                amount_out_needed,
                reserve_in,
                reserve_out,
                lp_fee_bps=pool.lp_fee_bps,
                host_fee_bps=pool.host_fee_bps,
                integrator_fee_bps=integrator_fee_bps,
                input_is_asset_a=asset_in.lower() == pool.asset_a.lower(),
            )
            quote = await self.simulate(
                pool_id,
                asset_in,
                asset_out,
                amount_in,
                integrator_fee_bps=integrator_fee_bps,
            )
            if quote.amount_out < amount_out_needed:
                raise NoLiquidity(
                    f"Simulated output {quote.amount_out} < required {amount_out_needed}"
                )
            return quote

        quotes, errors = await gather_quotes(
            list(by_id), _evaluate, timeout_s=self.timeout_s
        )
        if not quotes:
            raise NoLiquidity(
                f"No pool can deliver {amount_out_needed} of {asset_out[:8]}...",
                details={"pool_errors": errors},
            )
        return min(quotes, key=_cheapest_input_key)
