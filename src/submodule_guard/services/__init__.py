"""Check pipeline: manifest reading, probing, classification and reporting."""

from .consistency_checker import check_submodules
from .git_backend import GitReachabilityBackend
from .manifest_reader import GitManifestSource, ManifestReader
from .reachability_prober import ReachabilityProber

__all__ = [
    "check_submodules",
    "GitReachabilityBackend",
    "GitManifestSource",
    "ManifestReader",
    "ReachabilityProber",
]
