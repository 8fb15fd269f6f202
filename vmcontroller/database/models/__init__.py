from .user import User
from .vm import VirtualMachine, VmStatus

__all__ = ["User", "VirtualMachine", "VmStatus"]
