"""Request bodies of the JSON API."""

from __future__ import annotations

from pydantic import BaseModel


class SignupRequest(BaseModel):
    username: str
    password: str
    email: str | None = None


class LoginRequest(BaseModel):
    identifier: str
    password: str


class SecondFactorRequest(BaseModel):
    pending_token: str
    code: str


class PasskeyAuthStartRequest(BaseModel):
    identifier: str | None = None


class PasskeyFinishRequest(BaseModel):
    challenge_id: str
    credential: dict
    name: str | None = None


class PasskeyRegisterStartRequest(BaseModel):
    password: str | None = None


class PasskeyRenameRequest(BaseModel):
    name: str


class PasswordChangeRequest(BaseModel):
    current_password: str | None = None
    new_password: str


class CodeRequest(BaseModel):
    code: str


class TOTPEnableRequest(BaseModel):
    challenge_id: str
    code: str


class EmailVerifyRequest(BaseModel):
    token: str


class AdminPasswordResetRequest(BaseModel):
    new_password: str
