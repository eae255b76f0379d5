"""Chat agent that dispatches tool calls embedded as self-closing tags in model replies."""

__version__ = "0.1.0"

__all__ = ["__version__"]
