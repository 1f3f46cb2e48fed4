"""
Variable interpolation module.
Implements {{expression}} resolution for step names and commands.
"""

from .interpolation import Interpolator, build_bindings

__all__ = ['Interpolator', 'build_bindings']
