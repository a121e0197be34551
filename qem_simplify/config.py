"""
Simplification Configuration
============================

Tunable constants for welding, cost solving and batch scheduling.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class SimplificationConfig:
    """
    Settings shared by mesh construction, the cost solver and the scheduler.

    Attributes:
        grid_size: Welding cell size in world units
        weld_epsilon: Input vertices closer than this inside one cell are merged
        relative_welding: Scale grid_size and weld_epsilon by the input
                          bounding-box diagonal instead of using world units
        determinant_epsilon: Below this |det| the constrained quadric system
                             is treated as singular
        batch_fraction: Fraction of the original vertex count collapsed per
                        scheduler step
        max_error: Optional cost ceiling; cheaper edges only are collapsed
        default_color: RGBA color given to every welded vertex
    """
    grid_size: float = 0.001
    weld_epsilon: float = 1e-4
    relative_welding: bool = False
    determinant_epsilon: float = 1e-10
    batch_fraction: float = 0.01
    max_error: Optional[float] = None
    default_color: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)

    def validate(self) -> "SimplificationConfig":
        """Raise ValueError on out-of-range settings, return self otherwise."""
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")
        if self.weld_epsilon <= 0:
            raise ValueError(f"weld_epsilon must be positive, got {self.weld_epsilon}")
        if self.determinant_epsilon <= 0:
            raise ValueError(
                f"determinant_epsilon must be positive, got {self.determinant_epsilon}"
            )
        if not 0.0 < self.batch_fraction <= 1.0:
            raise ValueError(
                f"batch_fraction must be in (0, 1], got {self.batch_fraction}"
            )
        if self.max_error is not None and self.max_error < 0:
            raise ValueError(f"max_error must be non-negative, got {self.max_error}")
        if len(self.default_color) != 4:
            raise ValueError("default_color must have 4 components")
        return self

    def welding_tolerances(self, diagonal: float) -> Tuple[float, float]:
        """
        Effective (grid_size, weld_epsilon) for an input of the given
        bounding-box diagonal.
        """
        if self.relative_welding and diagonal > 0:
            return self.grid_size * diagonal, self.weld_epsilon * diagonal
        return self.grid_size, self.weld_epsilon
