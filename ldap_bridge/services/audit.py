from __future__ import annotations

from sqlalchemy.orm import Session

from ..models import LoginAudit


def audit_login(
    db: Session,
    username: str,
    success: bool,
    ip: str,
    ua: str,
    result_code: str,
    details: str = "",
) -> None:
    db.add(
        LoginAudit(
            username=username[:255],
            success=success,
            ip=ip[:64],
            user_agent=ua[:512],
            result_code=result_code[:32],
            details=details[:512],
        )
    )
    db.commit()
