"""docselect - budget-constrained, multi-criteria document selection."""

__version__ = "0.1.0"
