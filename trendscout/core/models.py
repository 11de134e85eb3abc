"""Database models for TrendScout."""

from sqlalchemy import (
    String, DateTime, Text, Integer, BigInteger, JSON, Index, Float
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base


class TrendRecord(Base):
    """Canonical trends archived once per scan cycle."""
    __tablename__ = "trends"

    id = mapped_column(String(64), primary_key=True)
    scan_id = mapped_column(String(64), index=True, nullable=True)
    topic = mapped_column(String(500), nullable=False)
    topic_key = mapped_column(String(500), nullable=False, index=True)
    platforms = mapped_column(JSON, nullable=False)  # sorted list of platform names
    trend_score = mapped_column(Float, default=0.0)
    search_volume = mapped_column(BigInteger, default=0, nullable=False)
    competition_level = mapped_column(String(16), nullable=False)  # low|medium|high
    lifecycle_stage = mapped_column(String(16), nullable=False, index=True)
    related_keywords = mapped_column(JSON, nullable=True)
    discovery_date = mapped_column(DateTime(timezone=True), index=True)
    expiry_date = mapped_column(DateTime(timezone=True), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


class NicheRecord(Base):
    """Trends promoted to business-opportunity candidates."""
    __tablename__ = "niches"

    id = mapped_column(String(64), primary_key=True)
    scan_id = mapped_column(String(64), index=True, nullable=True)
    niche_name = mapped_column(String(500), nullable=False)
    category = mapped_column(String(64), nullable=False, index=True)
    market_size_estimate = mapped_column(BigInteger, default=0)
    competition_score = mapped_column(Float, default=0.0)
    profitability_score = mapped_column(Float, default=0.0)
    trend_direction = mapped_column(String(16), nullable=False)  # up|stable|down
    recommended_products = mapped_column(JSON, nullable=True)
    discovered_at = mapped_column(DateTime(timezone=True), index=True)


class ScanRun(Base):
    """One row per monitor scan cycle with its outcome."""
    __tablename__ = "scan_runs"

    id = mapped_column(String(64), primary_key=True)
    status = mapped_column(String(32), default="completed", index=True)  # completed|degraded|failed
    platforms_ok = mapped_column(JSON, nullable=True)
    platforms_failed = mapped_column(JSON, nullable=True)
    raw_count = mapped_column(Integer, default=0)
    trends_count = mapped_column(Integer, default=0)
    hot_count = mapped_column(Integer, default=0)
    niches_count = mapped_column(Integer, default=0)
    errors = mapped_column(JSON, nullable=True)
    stage_timings = mapped_column(JSON, nullable=True)
    error_message = mapped_column(Text, nullable=True)
    started_at = mapped_column(DateTime(timezone=True), index=True)
    completed_at = mapped_column(DateTime(timezone=True))


Index('idx_trends_score_desc', TrendRecord.trend_score.desc())
Index('idx_trends_key_discovery', TrendRecord.topic_key, TrendRecord.discovery_date)
Index('idx_niches_profitability_desc', NicheRecord.profitability_score.desc())
Index('idx_scan_runs_status_started', ScanRun.status, ScanRun.started_at)
