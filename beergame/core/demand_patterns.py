"""Customer demand sequences seen by the retailer, one value per week."""
import math
import random
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from beergame.schemas.game import (
    ClassicDemandParams,
    ConstantDemandParams,
    DemandPattern,
    DemandPatternType,
    RandomDemandParams,
    SeasonalDemandParams,
)


def classic_demand(num_rounds: int, params: ClassicDemandParams, rng: Optional[random.Random] = None) -> List[int]:
    return [
        params.final_demand if week >= params.change_week else params.initial_demand
        for week in range(1, num_rounds + 1)
    ]


def random_demand(num_rounds: int, params: RandomDemandParams, rng: Optional[random.Random] = None) -> List[int]:
    """Uniform integer demand; pass a seeded ``rng`` for a reproducible game."""
    rng = rng or random.Random()
    return [rng.randint(params.min_demand, params.max_demand) for _ in range(num_rounds)]


def seasonal_demand(num_rounds: int, params: SeasonalDemandParams, rng: Optional[random.Random] = None) -> List[int]:
    """Sine wave around ``base_demand``, never below one unit."""
    demand = []
    for week in range(num_rounds):
        angle = 2 * math.pi * week / params.period
        demand.append(max(1, int(params.base_demand + params.amplitude * math.sin(angle))))
    return demand


def constant_demand(num_rounds: int, params: ConstantDemandParams, rng: Optional[random.Random] = None) -> List[int]:
    return [params.demand] * num_rounds


GENERATORS: Dict[DemandPatternType, Callable[..., List[int]]] = {
    DemandPatternType.CLASSIC: classic_demand,
    DemandPatternType.RANDOM: random_demand,
    DemandPatternType.SEASONAL: seasonal_demand,
    DemandPatternType.CONSTANT: constant_demand,
}


def generate_demand(
    pattern: Optional[Union[DemandPattern, Mapping[str, Any]]] = None,
    num_rounds: int = 30,
    rng: Optional[random.Random] = None,
) -> List[int]:
    """Build the customer demand for ``num_rounds`` weeks.

    ``pattern`` may be a :class:`DemandPattern` or a plain mapping with
    ``type`` and ``params``; mappings are validated first, so unknown types or
    parameters raise ``pydantic.ValidationError``. Omitting it gives the
    classic 4 → 8 step at week five.
    """
    if pattern is None:
        pattern = DemandPattern()
    elif not isinstance(pattern, DemandPattern):
        pattern = DemandPattern.model_validate(pattern)

    if num_rounds <= 0:
        return []
    return GENERATORS[pattern.type](num_rounds, pattern.typed_params(), rng)
