import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db, MasterData, User
from schemas import MasterDataType, Token, UserCreate, UserLogin, UserRead

logger = logging.getLogger(__name__)
settings = get_settings()

auth_router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

DEFAULT_MASTER_DATA = {
    MasterDataType.INCOME_CATEGORY: [
        "Salary",
        "Bonus",
        "Investment",
        "Freelance",
        "Gift",
        "Other",
    ],
    MasterDataType.EXPENSE_CATEGORY: [
        "Food",
        "Transportation",
        "Shopping",
        "Bills",
        "Entertainment",
        "Health",
        "Education",
        "Other",
    ],
    MasterDataType.PAYMENT_METHOD: [
        "Cash",
        "Debit",
        "Credit",
        "E-wallet",
        "Transfer",
        "Other",
    ],
}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.access_token_expire_minutes
    )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


def seed_master_data(db: Session, user_id: str):
    """Give a user the default categories and payment methods."""
    for data_type, values in DEFAULT_MASTER_DATA.items():
        for value in values:
            db.add(MasterData(user_id=user_id, type=data_type.value, value=value))


async def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise credentials_exception

    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise credentials_exception
    return user


@auth_router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(user: UserCreate, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.username == user.username).first()
    if db_user:
        raise HTTPException(status_code=400, detail="Username already registered")

    new_user = User(username=user.username, password_hash=hash_password(user.password))
    db.add(new_user)
    db.flush()
    seed_master_data(db, new_user.id)
    db.commit()
    logger.info("Registered user %s", new_user.username)

    access_token = create_access_token(data={"sub": user.username})
    return Token(access_token=access_token)


@auth_router.post("/login", response_model=Token)
async def login(user: UserLogin, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.username == user.username).first()
    if not db_user or not verify_password(user.password, db_user.password_hash):
        logger.warning("Failed login for %s", user.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    access_token = create_access_token(data={"sub": user.username})
    return Token(access_token=access_token)


@auth_router.get("/me", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@auth_router.delete("/me")
async def delete_me(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    username = current_user.username
    # Owned rows go with the user through ON DELETE CASCADE.
    db.delete(current_user)
    db.commit()
    logger.info("Deleted user %s", username)
    return {"success": True}
