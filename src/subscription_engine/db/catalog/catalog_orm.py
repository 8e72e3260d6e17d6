# subscription_engine/db/catalog/catalog_orm.py
from __future__ import annotations
from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column
from ..base import Base, CreatedAt


class CategoryORM(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[CreatedAt]


class LocationORM(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")
    created_at: Mapped[CreatedAt]

    @property
    def full_name(self) -> str:
        return f"{self.city}, {self.region}" if self.region else self.city
