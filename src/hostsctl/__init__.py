"""
Local package for hosts-controller-manager.

This package provides the merged configuration through the config module and
the lifecycle supervisor for the k8s-hosts-controller process.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
