"""E-learning data layer: canonical schema, tree repository and legacy migration tools."""

__version__ = "0.1.0"
