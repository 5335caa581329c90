from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from smartgarden.core.security import token_user_id
from smartgarden.db.session import SessionLocal
from smartgarden.models.user import User
from smartgarden.services.adafruit import AdafruitClient
from smartgarden.services.command_dispatch import CommandDispatcher, dispatcher
from smartgarden.services.watering_scheduler import WateringScheduler, watering_scheduler

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    user_id = token_user_id(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user

def require_roles(*roles: str):
    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return user
    return _dep

def get_adafruit_client() -> AdafruitClient:
    return AdafruitClient()

def get_dispatcher() -> CommandDispatcher:
    return dispatcher

def get_scheduler() -> WateringScheduler:
    return watering_scheduler
