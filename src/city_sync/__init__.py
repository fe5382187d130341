"""City reconciliation pipeline between the graph store and the canonical store."""

__version__ = "0.1.0"
