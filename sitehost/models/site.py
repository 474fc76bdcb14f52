"""Site models.

- Site: one tenant's hosted static content, served at <subdomain>.<platform>.
- CustomDomain: an extra hostname attached to a site.

The unique index on sites.subdomain is the subdomain registry: a second
insert of the same name fails at the database, whichever process tries it.
Stats columns are only ever changed with atomic UPDATEs (see
services/site_service.py), never by assigning to the attributes.
"""

import uuid

from sitehost.extensions import db


def default_settings():
    return {
        "custom404": None,
        "customError": None,
        "passwordProtection": {"enabled": False},
        "analytics": True,
        "indexing": True,
    }


class Site(db.Model):
    __tablename__ = "sites"

    BUILD_STATUSES = ["pending", "building", "success", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(100), nullable=False)
    subdomain = db.Column(db.String(20), unique=True, nullable=False)
    settings = db.Column(db.JSON, default=default_settings)
    active = db.Column(db.Boolean, default=True, nullable=False)
    build_status = db.Column(
        db.String(20), default="success", nullable=False
    )  # pending | building | success | failed

    # --- Stats ---
    visits = db.Column(db.Integer, default=0, nullable=False)
    bandwidth = db.Column(db.BigInteger, default=0, nullable=False)
    storage_bytes = db.Column(db.BigInteger, default=0, nullable=False)
    last_deployed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="sites")
    custom_domains = db.relationship(
        "CustomDomain",
        back_populates="site",
        cascade="all, delete-orphan",
        order_by="CustomDomain.created_at",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.owner_id,
            "name": self.name,
            "subdomain": self.subdomain,
            "customDomains": [d.to_dict() for d in self.custom_domains],
            "settings": self.settings or default_settings(),
            "stats": {
                "visits": self.visits or 0,
                "bandwidth": self.bandwidth or 0,
                "storage": self.storage_bytes or 0,
                "lastDeployed": (
                    self.last_deployed_at.isoformat()
                    if self.last_deployed_at
                    else None
                ),
            },
            "active": self.active,
            "buildStatus": self.build_status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Site {self.subdomain} ({'active' if self.active else 'inactive'})>"


class CustomDomain(db.Model):
    __tablename__ = "custom_domains"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    site_id = db.Column(
        db.String(36),
        db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # A hostname belongs to at most one site system-wide.
    domain = db.Column(db.String(253), unique=True, nullable=False)
    verified = db.Column(db.Boolean, default=False, nullable=False)
    ssl_enabled = db.Column(db.Boolean, default=False, nullable=False)
    dns_records = db.Column(db.JSON, default=dict)  # {"A": [], "CNAME": [], "TXT": []}
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    site = db.relationship("Site", back_populates="custom_domains")

    def to_dict(self):
        return {
            "domain": self.domain,
            "verified": self.verified,
            "sslEnabled": self.ssl_enabled,
            "dnsRecords": self.dns_records or {"A": [], "CNAME": [], "TXT": []},
        }

    def __repr__(self):
        return f"<CustomDomain {self.domain} verified={self.verified}>"
