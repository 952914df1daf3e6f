from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from scripturequiz.config import settings
from scripturequiz.database import get_supabase_client
import logging

security = HTTPBearer()

EDUCATOR_ROLES = ("educator", "teacher", "admin")

def verify_supabase_token(token: str):
    """Verify Supabase JWT token"""
    try:
        user = get_supabase_client().auth.get_user(token)
        if user and user.user:
            return user.user
        return None
    except Exception as e:
        logging.error(f"Supabase token verification failed: {e}")
        return None

def _user_dict(user) -> dict:
    metadata = user.user_metadata or {}
    return {
        "id": user.id,
        "email": user.email,
        "role": (metadata.get("role") or "student").lower(),
        "metadata": metadata,
    }

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Get current user from Supabase JWT token"""
    user = verify_supabase_token(credentials.credentials)
    if user:
        return _user_dict(user)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials"
    )

def is_admin_user(user: dict) -> bool:
    """Admins carry the admin role or are listed in ADMIN_EMAILS"""
    if user.get("role") == "admin":
        return True
    return (user.get("email") or "").lower() in settings.admin_email_list

def is_educator_user(user: dict) -> bool:
    return user.get("role") in EDUCATOR_ROLES or is_admin_user(user)

async def require_admin(current_user: dict = Depends(get_current_user)):
    """Require admin privileges"""
    if not is_admin_user(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized - Admin access required"
        )
    return current_user

async def require_educator(current_user: dict = Depends(get_current_user)):
    if not is_educator_user(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only educators can manage quizzes"
        )
    return current_user

async def require_student(current_user: dict = Depends(get_current_user)):
    """Any signed-in user can take quizzes, educators included"""
    return current_user
