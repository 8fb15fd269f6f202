from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from ..database import Base

class User(Base):
    """
    VM을 소유하는 사용자를 나타냅니다.
    계정 관리는 별도 서비스의 책임이며, 여기서는 소유자 참조와 사용자 네임스페이스만 보관합니다.
    """
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    namespace = Column(String, nullable=False)

    vms = relationship("VirtualMachine", back_populates="owner")
