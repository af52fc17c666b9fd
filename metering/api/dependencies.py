# metering/api/dependencies.py
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..core.database import get_db
from ..models.user import User
from ..services.usage_service import UsageService

async def get_current_user(
    x_user_id: int = Header(..., description="Authenticated user id, set by the web tier"),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the user the web tier authenticated for this request"""
    result = await db.execute(select(User).where(User.id == x_user_id))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )
    return user

def get_usage_service(db: AsyncSession = Depends(get_db)) -> UsageService:
    """Dependency to get usage service instance"""
    return UsageService(db)
