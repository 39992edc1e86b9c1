"""
Configuration: reachability options and YAML request files.
"""

from setreach.config.options import AdaptiveOptions, ReachOptions
from setreach.config.request import ReachRequest

__all__ = ["AdaptiveOptions", "ReachOptions", "ReachRequest"]
