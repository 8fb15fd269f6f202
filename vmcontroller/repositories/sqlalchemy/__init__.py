from .sqlalchemy_vm_repository import SqlalchemyVMRepository

__all__ = ["SqlalchemyVMRepository"]
