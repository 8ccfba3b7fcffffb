"""DaggerGM adventure generator: credits, regeneration budgets and rate limiting."""

__version__ = "1.0.0"
