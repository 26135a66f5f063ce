"""
Vehicle route and route stop models.

A route is an ordered list of stops. Each route stop stores the leg distance
from the previous stop and the running total, so ``total_distance`` on the
route equals the last stop's ``cumulative_distance``.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.db.session import Base


class VehicleRoute(Base):
    __tablename__ = "vehicle_routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    total_distance = Column(Float, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<VehicleRoute(id={self.id}, name='{self.name}', distance={self.total_distance})>"


class RouteStop(Base):
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    vehicle_route_id = Column(Integer, ForeignKey("vehicle_routes.id", ondelete="CASCADE"), nullable=False, index=True)
    stop_id = Column(Integer, ForeignKey("stops.id", ondelete="CASCADE"), nullable=False, index=True)
    stop_order = Column(Integer, nullable=False)
    arrival_time = Column(String(5), nullable=True)  # HH:MM
    departure_time = Column(String(5), nullable=True)  # HH:MM
    distance_from_previous = Column(Float, default=0, nullable=False)
    cumulative_distance = Column(Float, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<RouteStop(route_id={self.vehicle_route_id}, stop_id={self.stop_id}, order={self.stop_order})>"
