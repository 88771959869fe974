from typing import List, Optional

from pydantic import BaseModel


class FinalScore(BaseModel):
    role: str
    name: str
    total_cost: float
    backorder: int
    is_player: bool = False


class CostMetrics(BaseModel):
    total_cost: float
    holding_cost: float
    backorder_cost: float
    average_weekly_cost: float


class InventoryMetrics(BaseModel):
    average_inventory: float
    average_backorder: float
    stockout_weeks: int
    service_level: float  # Share of each week's demand shipped that same week


class OrderMetrics(BaseModel):
    average_order: float
    order_variability: Optional[float]  # Coefficient of variation
    bullwhip_effect: Optional[float]  # Variance ratio between orders and customer demand


class RolePerformance(BaseModel):
    role: str
    name: str
    rounds_played: int
    cost_metrics: CostMetrics
    inventory_metrics: InventoryMetrics
    order_metrics: OrderMetrics
    orders: List[int]
