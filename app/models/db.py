"""
SQLAlchemy models.

`brands` / `products`           the catalog (Catalog Store)
`skin_profiles`                 versioned profiles, a retake bumps `version`
`questionnaires` / `user_answers`  raw questionnaire answers (JSON values)
`recommendation_sessions`       product ids last recommended to a user
`cached_plans`                  generated plans keyed by user + profile version
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Brand(Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    products = relationship("Product", back_populates="brand")

    def __repr__(self):
        return f"<Brand(id={self.id}, name={self.name}, active={self.is_active})>"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    price = Column(Float)
    step = Column(String(50), index=True)
    category = Column(String(50), index=True)
    skin_types = Column(JSON, default=list)
    concerns = Column(JSON, default=list)
    avoid_if = Column(JSON, default=list)
    active_ingredients = Column(JSON, default=list)
    is_hero = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=0)
    published = Column(Boolean, nullable=False, default=False)
    image_url = Column(String(500))
    market_links = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    brand = relationship("Brand", back_populates="products")

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name}, step={self.step})>"


class SkinProfile(Base):
    __tablename__ = "skin_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    skin_type = Column(String(30))
    sensitivity_level = Column(String(20))
    acne_level = Column(Integer)
    age_group = Column(String(20))
    has_pregnancy = Column(Boolean, nullable=False, default=False)
    medical_markers = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "version", name="uq_skin_profile_version"),)

    def __repr__(self):
        return f"<SkinProfile(id={self.id}, user={self.user_id}, v={self.version})>"


class Questionnaire(Base):
    __tablename__ = "questionnaires"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UserAnswer(Base):
    __tablename__ = "user_answers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    questionnaire_id = Column(Integer, ForeignKey("questionnaires.id", ondelete="CASCADE"), nullable=False)
    question_code = Column(String(100), nullable=False)
    value = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "questionnaire_id", "question_code", name="uq_user_answer"),
    )


class RecommendationSession(Base):
    __tablename__ = "recommendation_sessions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    profile_id = Column(Integer, ForeignKey("skin_profiles.id", ondelete="SET NULL"))
    product_ids = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CachedPlan(Base):
    __tablename__ = "cached_plans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cache_key = Column(String(200), nullable=False, unique=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    profile_version = Column(Integer, nullable=False)
    payload = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<CachedPlan(key={self.cache_key}, expires={self.expires_at})>"
