"""Kernel types – result values."""
from mp_eventbus.kernel.types.result import Err, Ok, Result

__all__ = ["Err", "Ok", "Result"]
