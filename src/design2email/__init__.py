"""design2email - render design-tool node trees as table-based email HTML."""

__version__ = "0.4.0"

__all__ = ["__version__"]
