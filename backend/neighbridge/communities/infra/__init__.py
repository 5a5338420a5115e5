"""Infrastructure helpers scoped to the communities domain."""

from . import scheduler  # noqa: F401

__all__ = ["scheduler"]
