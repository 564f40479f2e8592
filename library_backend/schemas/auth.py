from datetime import datetime
from pydantic import BaseModel
from typing import Optional

# Request fields are optional so the identity service can report which one is missing

class RegisterRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    fullName: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None

class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    userId: int
    username: str
    fullName: str
    role: str
    email: str

class UserResponse(BaseModel):
    userId: int
    username: str
    fullName: str
    email: str
    role: str
    createdAt: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserUpdate(BaseModel):
    fullName: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
