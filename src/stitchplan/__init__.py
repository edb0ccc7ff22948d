"""StitchPlan - production planning core for garment manufacturing."""

__version__ = "0.1.0"
