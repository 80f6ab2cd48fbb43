"""Hotel front desk: local store, disk tree, remote API and the glue between them."""

__version__ = "0.3.0"
