from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from vmcontroller.database import models
from vmcontroller.repositories.interfaces import IVMRepository
from vmcontroller.services.exceptions import VmAlreadyExistsError

class SqlalchemyVMRepository(IVMRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def _active(self):
        return self.db.query(models.VirtualMachine).filter(models.VirtualMachine.is_deleted.is_(False))

    def create(self, vm_model: models.VirtualMachine) -> models.VirtualMachine:
        self.db.add(vm_model)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise VmAlreadyExistsError(
                f"VM '{vm_model.name}' or node port {vm_model.node_port} is already in use."
            ) from e
        self.db.refresh(vm_model)
        return vm_model

    def find_by_name(self, name: str) -> Optional[models.VirtualMachine]:
        return self._active().filter(models.VirtualMachine.name == name).first()

    def find_by_port(self, node_port: int) -> Optional[models.VirtualMachine]:
        return self._active().filter(models.VirtualMachine.node_port == node_port).first()

    def list_by_owner_id(self, owner_id: int) -> List[models.VirtualMachine]:
        return self._active().filter(models.VirtualMachine.owner_id == owner_id).order_by(models.VirtualMachine.created_at.desc()).all()

    def update_status_by_name(self, name: str, status: models.VmStatus) -> bool:
        updated = self._active().filter(models.VirtualMachine.name == name).update(
            {models.VirtualMachine.status: status}, synchronize_session=False
        )
        self.db.commit()
        return updated > 0

    def mark_deleted_by_name(self, name: str) -> bool:
        updated = self._active().filter(models.VirtualMachine.name == name).update(
            {models.VirtualMachine.is_deleted: True, models.VirtualMachine.status: models.VmStatus.DELETED},
            synchronize_session=False,
        )
        self.db.commit()
        return updated > 0

    def list_used_ports(self) -> List[int]:
        return [row[0] for row in self._active().with_entities(models.VirtualMachine.node_port).all()]
