"""API token model.

Named bearer tokens issued at login/registration or on request. The
token string is what clients send in `Authorization: Bearer ...`.
"""

import secrets
import uuid

from sitehost.extensions import db


class ApiToken(db.Model):
    __tablename__ = "api_tokens"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False, default="default")
    token = db.Column(
        db.String(64),
        unique=True,
        nullable=False,
        default=lambda: secrets.token_hex(32),
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    user = db.relationship("User", back_populates="api_tokens")

    def __repr__(self):
        return f"<ApiToken {self.name} user={self.user_id}>"
