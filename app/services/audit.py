"""
模块职能：
- 审计记录：登录 / 注册 / 用户增删改，只追加、不读回。
- 尽力而为：在主操作提交之后单独提交；写失败只记日志，不影响主请求。

日志：
- audit_recorded / audit_write_failed
"""
from typing import Optional

from sqlalchemy.orm import Session

from app.core.models import AuditAction, AuditLog
from app.infra.logger import emit, emit_error


class AuditRecorder:
    def __init__(self, db: Session, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent

    def record(self, action: AuditAction, user_id: Optional[int], description: str) -> bool:
        entry = AuditLog(
            user_id=user_id,
            action=action.value,
            description=description,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            emit_error("audit_write_failed", action=action.value, user_id=user_id, err=str(e))
            return False
        emit("audit_recorded", action=action.value, user_id=user_id)
        return True
