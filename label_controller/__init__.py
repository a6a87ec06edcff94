"""Pod Label Controller: keeps derived labels on Pods in sync with an annotation."""

__version__ = "0.1.0"
