"""用户 CRUD：用户查询与存储配额的原子增量。"""

from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.packages.cloudstore.crud.base import CRUDBase
from app.packages.cloudstore.models.user import User


class CRUDUser(CRUDBase[User]):
    """封装常用的用户查询方法，供业务层复用。"""

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return self.query(db).filter(User.email == email.strip().lower()).first()

    def increment_storage_used(self, db: Session, user_id: int, delta: int, *, auto_commit: bool = True) -> None:
        """在数据库侧原子地执行 ``storage_used += delta``，结果下限为 0。

        不读取快照再回写，避免同一用户并发上传时丢失更新；不做上限截断，
        超额由上传前的准入检查阻止。
        """
        new_value = User.storage_used + int(delta)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(storage_used=case((new_value < 0, 0), else_=new_value))
            # 会话中已加载的 User 实例会被标记过期，下次访问时重新读取计数
            .execution_options(synchronize_session="fetch")
        )
        db.execute(stmt)
        if auto_commit:
            db.commit()


user_crud = CRUDUser(User)
