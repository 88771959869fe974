from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DemandPatternType(str, Enum):
    CLASSIC = "classic"
    RANDOM = "random"
    SEASONAL = "seasonal"
    CONSTANT = "constant"


class ClassicDemandParams(BaseModel):
    """A single permanent step in customer demand."""

    initial_demand: int = Field(4, ge=0)
    change_week: int = Field(5, ge=1, description="First week at the final demand")
    final_demand: int = Field(8, ge=0)

    model_config = ConfigDict(extra="forbid")


class RandomDemandParams(BaseModel):
    min_demand: int = Field(1, ge=0)
    max_demand: int = Field(10, ge=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_range(self) -> "RandomDemandParams":
        if self.min_demand > self.max_demand:
            raise ValueError("min_demand must not exceed max_demand")
        return self


class SeasonalDemandParams(BaseModel):
    base_demand: int = Field(4, ge=0)
    amplitude: int = Field(2, ge=0)
    period: int = Field(12, ge=1, description="Weeks per season cycle")

    model_config = ConfigDict(extra="forbid")


class ConstantDemandParams(BaseModel):
    demand: int = Field(4, ge=0)

    model_config = ConfigDict(extra="forbid")


DEMAND_PARAM_MODELS: Dict[DemandPatternType, Type[BaseModel]] = {
    DemandPatternType.CLASSIC: ClassicDemandParams,
    DemandPatternType.RANDOM: RandomDemandParams,
    DemandPatternType.SEASONAL: SeasonalDemandParams,
    DemandPatternType.CONSTANT: ConstantDemandParams,
}


class DemandPattern(BaseModel):
    type: DemandPatternType = Field(DemandPatternType.CLASSIC, description="Type of demand pattern")
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters for the demand pattern; omitted values take the type's defaults"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "classic",
                "params": {
                    "initial_demand": 4,
                    "change_week": 5,
                    "final_demand": 8
                }
            }
        }
    )

    @model_validator(mode="after")
    def fill_params(self) -> "DemandPattern":
        self.params = self.typed_params().model_dump()
        return self

    def typed_params(self) -> BaseModel:
        """Parameters validated against the model for this pattern type."""
        return DEMAND_PARAM_MODELS[self.type].model_validate(self.params)


class ProfileOverride(BaseModel):
    """Per-parameter overrides merged over a behavior profile's defaults."""

    cover_weeks: Optional[float] = Field(None, ge=0, description="Weeks of demand held as safety stock")
    backlog_weight: Optional[float] = Field(None, ge=0, description="How strongly backorder inflates the target")
    inv_adjust_weight: Optional[float] = Field(None, ge=0, description="Share of the inventory gap corrected per round")
    smoothing: Optional[float] = Field(None, ge=0, le=1, description="Weight retained from the previous order")
    noise_level: Optional[float] = Field(None, ge=0, lt=1, description="Symmetric random perturbation fraction")

    model_config = ConfigDict(extra="forbid")

    def as_updates(self) -> Dict[str, float]:
        """Return only the parameters that were explicitly set."""
        return self.model_dump(exclude_none=True)


class GameConfig(BaseModel):
    total_rounds: int = Field(30, ge=1, description="Number of weeks to play")
    transport_delay: int = Field(1, ge=1, le=52, description="Weeks a shipment spends in transit")
    receiving_time: int = Field(1, ge=1, le=52, description="Weeks of intake processing after arrival")
    production_time: int = Field(1, ge=1, le=52, description="Weeks for a factory production run")
    unit_holding_cost: float = Field(1.0, ge=0, description="Cost per unit on hand per week")
    unit_backorder_cost: float = Field(2.0, ge=0, description="Cost per backordered unit per week")
    initial_inventory: int = Field(12, ge=0)
    factory_initial_inventory: int = Field(4, ge=0)
    initial_pipeline: int = Field(4, ge=0, description="Units seeded in every pipeline slot")
    demand_pattern: DemandPattern = Field(default_factory=DemandPattern)
    ai_parameter_overrides: Dict[str, ProfileOverride] = Field(
        default_factory=dict,
        description="Overrides keyed by role id or behavior profile name",
    )
    seed: Optional[int] = Field(None, description="Seed for demand and ordering noise")

    @field_validator("ai_parameter_overrides", mode="before")
    @classmethod
    def canonical_override_keys(cls, value):
        if not isinstance(value, dict):
            return value
        # Deferred: the services package imports this module
        from beergame.services.policy_factory import parse_profile
        from beergame.services.role_state import Role

        canonical = {}
        for key, override in value.items():
            try:
                name = Role.parse(key).value
            except ValueError:
                try:
                    name = parse_profile(str(key)).value
                except ValueError:
                    raise ValueError(
                        f"Override key {key!r} is neither a role nor a behavior profile"
                    ) from None
            canonical[name] = override
        return canonical


class RoleSnapshot(BaseModel):
    role: str
    name: str
    is_player: bool = False
    profile: Optional[str] = None
    inventory: int
    backorder: int
    receiving_queue: List[int] = Field(default_factory=list)
    transit_queue: List[int] = Field(default_factory=list)
    current_demand: int = 0
    last_order: int = 0
    total_cost: float = 0.0
    received_this_round: int = 0
    shipped_this_round: int = 0
    cost_this_round: float = 0.0


class GameStateSnapshot(BaseModel):
    current_round: int
    total_rounds: int
    phase: str
    player_role: Optional[str] = None
    shipping_confirmed: bool = False
    ordering_confirmed: bool = False
    customer_demand: int = 0
    roles: Dict[str, RoleSnapshot] = Field(default_factory=dict)
