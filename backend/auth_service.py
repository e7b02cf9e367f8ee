from fastapi import APIRouter, Depends, HTTPException, Header, Request, status
from typing import Optional
from sqlalchemy.orm import Session
import logging
import models
import auth
from auth import Identity
from database import get_db
from redis_client import rate_limit
from schemas import UserCreate, UserLogin, ProfileUpdate, PasswordChange

logger = logging.getLogger("AuthService")

router = APIRouter()


def user_to_dict(user: models.User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "avatar": user.avatar,
        "phone": user.phone,
        "createdAt": user.created_at,
    }


def _user_from_token(authorization: str, db: Session) -> models.User:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = authorization.replace("Bearer ", "", 1)
    payload = auth.verify_token(token)

    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(models.User).filter(models.User.id == int(user_id)).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


async def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_token(authorization, db)


async def get_optional_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    """Гость без токена допустим, но битый токен все равно 401."""
    if not authorization:
        return None
    return _user_from_token(authorization, db)


def get_identity(current_user: models.User = Depends(get_current_user)) -> Identity:
    return Identity(user_id=current_user.id, role=current_user.role)


def get_optional_identity(current_user: Optional[models.User] = Depends(get_optional_user)) -> Optional[Identity]:
    if current_user is None:
        return None
    return Identity(user_id=current_user.id, role=current_user.role)


def require_roles(*roles: str):
    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(status_code=403, detail="Access denied")
        return identity
    return dependency


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(user: UserCreate, db: Session = Depends(get_db)):
    logger.info(f"Registering user: {user.email}")

    db_user = db.query(models.User).filter(models.User.email == user.email).first()
    if db_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    hashed_password = auth.get_password_hash(user.password)
    # Самостоятельная регистрация всегда дает роль user
    db_user = models.User(
        email=user.email,
        name=user.name,
        password=hashed_password,
        role="user",
        phone=user.phone,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)

    access_token = auth.create_access_token(data={"sub": db_user.id, "role": db_user.role})
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"user": user_to_dict(db_user), "token": access_token},
    }


@router.post("/auth/login")
@rate_limit(max_requests=10, window=60, key_prefix="rate_limit:login")
async def login(request: Request, credentials: UserLogin, db: Session = Depends(get_db)):
    db_user = auth.authenticate_user(db, credentials.email, credentials.password)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    access_token = auth.create_access_token(data={"sub": db_user.id, "role": db_user.role})
    return {
        "success": True,
        "message": "Login successful",
        "data": {"user": user_to_dict(db_user), "token": access_token},
    }


@router.get("/auth/me")
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    return {"success": True, "data": {"user": user_to_dict(current_user)}}


@router.put("/auth/profile")
def update_profile(profile: ProfileUpdate, db: Session = Depends(get_db),
                   current_user: models.User = Depends(get_current_user)):
    updates = profile.dict(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    for key, value in updates.items():
        setattr(current_user, key, value)
    db.commit()
    db.refresh(current_user)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": {"user": user_to_dict(current_user)},
    }


@router.put("/auth/change-password")
def change_password(password_data: PasswordChange, db: Session = Depends(get_db),
                    current_user: models.User = Depends(get_current_user)):
    if not auth.verify_password(password_data.current_password, current_user.password):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    current_user.password = auth.get_password_hash(password_data.new_password)
    db.commit()
    return {"success": True, "message": "Password changed successfully"}


@router.get("/users")
def get_users(db: Session = Depends(get_db), identity: Identity = Depends(require_roles("admin"))):
    users = db.query(models.User).order_by(models.User.created_at.desc(), models.User.id.desc()).all()
    return {"success": True, "data": {"users": [user_to_dict(u) for u in users]}}


@router.get("/users/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    if not identity.is_admin and identity.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": {"user": user_to_dict(user)}}
