# auth.py

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
from slot_swap.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from slot_swap.database import database
from slot_swap.models import users

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


# Pydantic Models 
class User(BaseModel):
    id: int
    email: str
    name: str

class Token(BaseModel):
    access_token: str
    token_type: str

class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

async def get_user(email: str):
    query = users.select().where(users.c.email == email)
    return await database.fetch_one(query)

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

async def authenticate_user(email: str, password: str) -> Optional[User]:
    user_record = await get_user(email)
    if not user_record or not verify_password(password, user_record["hashed_password"]):
        return None
    return User(id=user_record["id"], email=user_record["email"], name=user_record["name"])

# Function to create a user in the database
async def create_user(user: UserCreate) -> User:
    hashed_password = pwd_context.hash(user.password)
    query = users.insert().values(
        name=user.name,
        email=user.email,
        hashed_password=hashed_password,
        created_at=datetime.now(timezone.utc),
    )
    user_id = await database.execute(query)
    return User(id=user_id, email=user.email, name=user.name)


# Helper function to decode token and fetch user, avoids code duplication
async def _decode_token_and_get_user(token: str) -> User:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email: str = payload.get("sub")
        if email is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    
    user = await get_user(email=email)
    if user is None:
        raise credentials_exception
    
    return User(id=user["id"], email=user["email"], name=user["name"])


# Used for API calls made by JavaScript
async def get_current_active_user(token: str = Depends(oauth2_scheme)) -> User:
    return await _decode_token_and_get_user(token)
