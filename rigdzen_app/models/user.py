# rigdzen_app/models/user.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import json
from datetime import datetime
from ..extensions import db

ROLE_ADMIN = "ADMIN"
ROLE_PARTICIPANT = "PARTICIPANT"
ROLES = (ROLE_ADMIN, ROLE_PARTICIPANT)

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120))
    role = db.Column(db.String(20), nullable=False, default=ROLE_PARTICIPANT)
    profile_completed = db.Column(db.Boolean, nullable=False, default=False)
    dietary_restrictions = db.Column(db.Text)   # JSON list of strings
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    oauth_accounts = db.relationship("OAuthAccount", backref="user", cascade="all,delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def dietary_list(self) -> list[str]:
        if not self.dietary_restrictions:
            return []
        try:
            return list(json.loads(self.dietary_restrictions))
        except (TypeError, ValueError):
            return []

class OAuthAccount(db.Model):
    __tablename__ = "oauth_accounts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = db.Column(db.String(30), nullable=False)       # GOOGLE
    provider_id = db.Column(db.String(255), nullable=False)   # "sub" claim
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("provider", "provider_id", name="uq_oauth_provider_id"),
    )
