from .adapter import CapabilityAdapter
from .results import Err, Ok, Result

__all__ = ["CapabilityAdapter", "Err", "Ok", "Result"]
