from __future__ import annotations

from dataclasses import dataclass, field

from .models import CoinSnapshot, Holding


@dataclass(frozen=True)
class HoldingValue:
    holding: Holding
    price: float | None
    market_value: float

    @property
    def priced(self) -> bool:
        return self.price is not None

    @property
    def unrealized_pl(self) -> float:
        return self.market_value - self.holding.cost_basis_total


@dataclass(frozen=True)
class Allocation:
    coin_id: int
    value: float
    share: float


@dataclass
class PortfolioSummary:
    total_market_value: float
    total_cost_basis: float
    unrealized_pl: float
    day_change: float
    allocations: list[Allocation] = field(default_factory=list)
    unpriced_coin_ids: list[int] = field(default_factory=list)


def price_map(snapshots: list[CoinSnapshot]) -> dict[int, float]:
    return {snapshot.id: snapshot.price for snapshot in snapshots if snapshot.price is not None}


def value_holding(holding: Holding, prices: dict[int, float]) -> HoldingValue:
    price = prices.get(holding.coin_id)
    market_value = holding.amount * price if price is not None else 0.0
    return HoldingValue(holding=holding, price=price, market_value=market_value)


def market_value(holding: Holding, prices: dict[int, float]) -> float:
    return value_holding(holding, prices).market_value


def total_market_value(holdings: list[Holding], prices: dict[int, float]) -> float:
    return sum(market_value(holding, prices) for holding in holdings)


def total_cost_basis(holdings: list[Holding]) -> float:
    return sum(holding.cost_basis_total for holding in holdings)


def unrealized_pl(holdings: list[Holding], prices: dict[int, float]) -> float:
    return total_market_value(holdings, prices) - total_cost_basis(holdings)


def day_change(holdings: list[Holding], prices: dict[int, float], snapshots: list[CoinSnapshot]) -> float:
    changes = {
        snapshot.id: snapshot.percent_change_24h
        for snapshot in snapshots
        if snapshot.percent_change_24h is not None
    }
    total = 0.0
    for holding in holdings:
        pct = changes.get(holding.coin_id)
        if pct is None:
            continue
        total += market_value(holding, prices) * (pct / 100.0)
    return total


def allocations(holdings: list[Holding], prices: dict[int, float]) -> list[Allocation]:
    """Market value per coin, largest first; equal values keep first-seen order."""
    grouped: dict[int, float] = {}
    for holding in holdings:
        grouped[holding.coin_id] = grouped.get(holding.coin_id, 0.0) + market_value(holding, prices)
    positive = [(coin_id, value) for coin_id, value in grouped.items() if value > 0]
    total = sum(value for _, value in positive)
    ranked = sorted(positive, key=lambda item: item[1], reverse=True)
    return [Allocation(coin_id=coin_id, value=value, share=value / total) for coin_id, value in ranked]


def summarize(
    holdings: list[Holding],
    prices: dict[int, float],
    snapshots: list[CoinSnapshot],
) -> PortfolioSummary:
    market_total = total_market_value(holdings, prices)
    cost_total = total_cost_basis(holdings)
    unpriced: list[int] = []
    for holding in holdings:
        if holding.coin_id not in prices and holding.coin_id not in unpriced:
            unpriced.append(holding.coin_id)
    return PortfolioSummary(
        total_market_value=market_total,
        total_cost_basis=cost_total,
        unrealized_pl=market_total - cost_total,
        day_change=day_change(holdings, prices, snapshots),
        allocations=allocations(holdings, prices),
        unpriced_coin_ids=unpriced,
    )
