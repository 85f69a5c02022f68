import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field, SecretStr

PASSWORD_REGEX = re.compile(
    r"^[A-Za-z0-9!@#$%^&*()_\-+=\[\]{};:'\",.<>/?|`~]+$"
)


def validate_password(v: SecretStr) -> SecretStr:
    password = v.get_secret_value()

    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")

    if " " in password:
        raise ValueError("Password must not contain spaces")

    if not PASSWORD_REGEX.fullmatch(password):
        raise ValueError(
            "Password may contain only English letters, digits and special symbols"
        )

    return v


ValidatePassword = Annotated[SecretStr, AfterValidator(validate_password)]


class RegisterIn(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: ValidatePassword


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)


class UserOut(BaseModel):
    id: int
    email: EmailStr
    username: str
