"""Beer Distribution Game simulation engine."""

from .schemas.game import GameConfig
from .services.engine import GamePhase, GamePhaseError, InvalidQuantityError, SupplyChainSimulator
from .services.policies import BehaviorProfile
from .services.role_state import Role

__version__ = "1.0.0"

__all__ = [
    "BehaviorProfile",
    "GameConfig",
    "GamePhase",
    "GamePhaseError",
    "InvalidQuantityError",
    "Role",
    "SupplyChainSimulator",
]
