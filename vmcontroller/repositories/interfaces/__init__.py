from .vm import IVMRepository

__all__ = ["IVMRepository"]
