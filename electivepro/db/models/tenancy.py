"""Tenant level tables: subscription plans and institutions."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, iso, utcnow


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    user_limit = Column(Integer, nullable=True)  # NULL = unlimited
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "user_limit": self.user_limit,
            "is_active": bool(self.is_active),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SubscriptionPlan id={self.id} code={self.code}>"


class Institution(Base):
    """A tenant: an organization with its own subdomain and branding."""

    __tablename__ = "institutions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True, index=True)
    domain = Column(String(255), nullable=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    logo_url = Column(String(500), nullable=True)
    favicon_url = Column(String(500), nullable=True)
    primary_color = Column(String(16), nullable=True)
    subscription_start = Column(DateTime, nullable=True)
    subscription_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def branding(self) -> dict:
        return {
            "logo_url": self.logo_url,
            "favicon_url": self.favicon_url,
            "primary_color": self.primary_color,
        }

    def as_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "subdomain": self.subdomain,
            "domain": self.domain,
            "plan_id": self.plan_id,
            "is_active": bool(self.is_active),
            "subscription_start": iso(self.subscription_start),
            "subscription_end": iso(self.subscription_end),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        data.update(self.branding())
        return data

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Institution id={self.id} subdomain={self.subdomain}>"


__all__ = ["SubscriptionPlan", "Institution"]
