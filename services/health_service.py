# © [2025] EDT&Partners. Licensed under CC BY 4.0.

"""
Service for health check
"""
import os
from icecream import ic
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from interfaces.health_interface import HealthServiceInterface, HealthResponse

class HealthService(HealthServiceInterface):
    """Service for health check"""

    @staticmethod
    def get_health_status(db: Session) -> HealthResponse:
        """Gets the health status of the service, including database reachability"""
        try:
            db.execute(text("SELECT 1"))
            database = "reachable"
        except SQLAlchemyError as e:
            ic(f"Database health check failed: {e}")
            db.rollback()
            database = "unreachable"

        healthy = database == "reachable"
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            version=os.getenv("VERSION", "1.0.0"),
            project_name=os.getenv("PROJECT_NAME", "Course AI Assistant"),
            database=database,
            message="Service is running correctly." if healthy else "Database is not reachable."
        )
