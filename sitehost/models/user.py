"""User (account) model.

Stores credentials, plan and role. Admin is a role on the same account
model as everyone else; quota limits are derived from role + plan by
services/quota_service.py.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from sitehost.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    PLANS = ["free", "pro", "enterprise", "admin"]
    ROLES = ["user", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    username = db.Column(db.String(30), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    plan = db.Column(db.String(20), default="free", nullable=False)
    role = db.Column(db.String(20), default="user", nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    sites = db.relationship("Site", back_populates="owner", lazy="dynamic")
    api_tokens = db.relationship(
        "ApiToken",
        back_populates="user",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "plan": self.plan,
            "role": self.role,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.username} ({self.role}/{self.plan})>"
