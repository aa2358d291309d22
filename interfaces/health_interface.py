# © [2025] EDT&Partners. Licensed under CC BY 4.0.

"""
Interface for health check services
"""
from abc import ABC, abstractmethod
from pydantic import BaseModel
from sqlalchemy.orm import Session

class HealthResponse(BaseModel):
    """Health check response model"""
    status: str
    version: str
    project_name: str
    database: str
    message: str

class HealthServiceInterface(ABC):
    """Interface for health check services"""

    @abstractmethod
    def get_health_status(self, db: Session) -> HealthResponse:
        """
        Gets the health status of the service

        Returns:
            HealthResponse: Service status information
        """
        pass
