from dataclasses import dataclass
from passlib.context import CryptContext
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.orm import Session
import logging
import secrets
import os

logger = logging.getLogger("Auth")

# Используем другую схему если bcrypt не доступен
try:
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
    # Проверим работу bcrypt
    pwd_context.hash("test")
except Exception as e:
    logger.warning(f"bcrypt is not available: {e}, falling back to pbkdf2_sha256")
    pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_secret_key():
    env_key = os.getenv("SECRET_KEY")
    if env_key:
        return env_key

    key_file = ".secret_key"
    if os.path.exists(key_file):
        try:
            with open(key_file, "r", encoding='utf-8') as f:
                return f.read().strip()
        except UnicodeDecodeError:
            logger.warning("Could not read secret key file, generating a new one")
            os.remove(key_file)

    new_key = secrets.token_urlsafe(32)
    with open(key_file, "w", encoding='utf-8') as f:
        f.write(new_key)
    if os.name != 'nt':
        os.chmod(key_file, 0o600)
    logger.info("Generated a new SECRET_KEY")
    return new_key


SECRET_KEY = get_secret_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

STAFF_ROLES = ("admin", "staff")


@dataclass(frozen=True)
class Identity:
    """Кто выполняет операцию. Передается в сервисы явно, а не через request.state."""
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def can_access(self, owner_id: Optional[int]) -> bool:
        return self.is_staff or (owner_id is not None and owner_id == self.user_id)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def authenticate_user(db: Session, email: str, password: str):
    from models import User
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user or not verify_password(password, user.password):
        return None
    return user


def resolve_customer_id(db: Session, identity: Optional[Identity], requested_user_id: Optional[int]) -> Optional[int]:
    """
    Владелец заказа/брони стола: явно указанный пользователь (только для staff/admin),
    сам вызывающий, либо None для анонимного гостя. Фиктивных guest-пользователей не создаем.
    """
    from models import User
    from errors import Forbidden, NotFound

    if requested_user_id is not None:
        if identity is None or (not identity.is_staff and identity.user_id != requested_user_id):
            raise Forbidden("Only staff can act on behalf of another user")
        if not db.query(User).filter(User.id == requested_user_id).first():
            raise NotFound("User not found")
        return requested_user_id

    return identity.user_id if identity else None


def create_access_token(data: dict):
    to_encode = data.copy()
    # PyJWT требует строковый sub
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def verify_token(token: str):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
