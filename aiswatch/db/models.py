from sqlalchemy import JSON, BigInteger, Column, DateTime, Double, Index, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class VesselPosition(Base):
    """
    Latest position per vessel — one row per MMSI, replaced on every report.
    No history is kept; stale rows are filtered out at query time via time_utc.
    """
    __tablename__ = "vessel_positions"

    mmsi = Column(BigInteger, primary_key=True, autoincrement=False)
    message_type = Column(Text, nullable=False)
    message = Column(JSON, nullable=False)
    ship_name = Column(Text)
    latitude = Column(Double, nullable=False)
    longitude = Column(Double, nullable=False)
    time_utc = Column(DateTime(timezone=True), nullable=False)
    # GeoJSON point, [lon, lat]
    geometry = Column(JSON, nullable=False)

    __table_args__ = (
        Index("idx_positions_lon_lat", "longitude", "latitude"),
        Index("idx_positions_time", "time_utc"),
    )
