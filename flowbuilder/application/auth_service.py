from __future__ import annotations

from flask import current_app
from werkzeug.security import check_password_hash

from flowbuilder.db import INTEGRITY_ERRORS
from flowbuilder.domain.contracts import AuthLoginInput, AuthRegisterInput
from flowbuilder.errors import AuthRequiredError, ConflictError, SystemError as AppSystemError
from flowbuilder.infrastructure.auth_repository import AuthRepository
from flowbuilder.policies import normalize_role


class AuthService:
    def __init__(self, repository: AuthRepository | None = None) -> None:
        self.repository = repository or AuthRepository()

    @staticmethod
    def summary(user: dict) -> dict:
        return {
            "id": int(user["id"]),
            "company_id": int(user["company_id"]),
            "name": user["name"],
            "email": user["email"],
            "role": normalize_role(user.get("role_name"), default="buyer"),
            "company_name": user.get("company_name"),
            "company_type": user.get("company_type"),
        }

    def login(self, db, auth_input: AuthLoginInput) -> dict:
        user = self.repository.find_user_by_email(db, auth_input.email)
        if not user or not check_password_hash(user["password_hash"], auth_input.password):
            current_app.logger.warning("auth_login_failed", extra={"email": auth_input.email})
            raise AuthRequiredError(code="auth_invalid_credentials", message_key="auth_invalid_credentials")
        return self.summary(self.repository.find_session_user(db, int(user["id"])))

    def register(self, db, auth_input: AuthRegisterInput) -> dict:
        """Create a client company with its first Admin user."""
        if self.repository.email_exists(db, auth_input.email):
            raise ConflictError(
                code="email_already_registered",
                message_key="email_already_registered",
                payload={"field": "email"},
            )
        role_id = self.repository.role_id(db, "Admin")
        if role_id is None:
            raise AppSystemError(details="Role table is not seeded; run flask db upgrade.")

        try:
            with db.transaction():
                company_id = self.repository.create_company(db, name=auth_input.company_name, company_type="client")
                user_id = self.repository.create_user(
                    db,
                    company_id=company_id,
                    role_id=role_id,
                    name=auth_input.name,
                    email=auth_input.email,
                    password=auth_input.password,
                )
        except INTEGRITY_ERRORS:
            raise ConflictError(
                code="email_already_registered",
                message_key="email_already_registered",
                payload={"field": "email"},
            ) from None

        current_app.logger.info("company_registered", extra={"company_id": company_id, "user_id": user_id})
        return self.summary(self.repository.find_session_user(db, user_id))

    def current_user(self, db, user_id: int) -> dict | None:
        user = self.repository.find_session_user(db, user_id)
        return self.summary(user) if user else None
