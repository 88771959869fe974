from .game import DemandPattern, DemandPatternType, GameConfig, GameStateSnapshot, ProfileOverride, RoleSnapshot
from .metrics import CostMetrics, FinalScore, InventoryMetrics, OrderMetrics, RolePerformance
