"""
Modules package for home-reactor.

Modules are plug-ins that add behavior on top of the kernel.
"""

from home_reactor.modules.base import RuntimeModule

__all__ = ["RuntimeModule"]
