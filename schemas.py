from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, field_validator


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


# Auth
class Credentials(_Request):
    username: StrictStr
    password: StrictStr


class RegisterRequest(Credentials):
    pass


class LoginRequest(Credentials):
    pass


class UserOut(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    token: str
    token_type: str = "bearer"


# Tasks
class TaskCreate(_Request):
    title: StrictStr

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v


class TaskUpdate(_Request):
    title: Optional[StrictStr] = None
    completed: Optional[StrictBool] = None

    @field_validator("title", "completed")
    @classmethod
    def not_null(cls, v, info):
        # Only runs for values the client sent; absent fields keep the default.
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class TaskOut(BaseModel):
    id: int
    title: str
    completed: bool

    model_config = ConfigDict(from_attributes=True)
