from .interface import BaseInterface

__all__ = ("BaseInterface",)
