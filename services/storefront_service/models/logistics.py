"""Logistics models: the zone → sub-zone → area tree and admin settings."""

from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, new_id
from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

LOGISTICS_CONFIG_KEY = "logistics_config"


class LogisticsZone(Base):
    """Node of the three-level delivery location tree.

    parent_id NULL is a zone, one level down a sub-zone, the leaf an area.
    """

    __tablename__ = "logistics_zones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("logistics_zones.id", ondelete="CASCADE"),
        index=True,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<LogisticsZone {self.name}>"


class AdminSetting(Base):
    """Key/value configuration managed from the admin console."""

    __tablename__ = "admin_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
