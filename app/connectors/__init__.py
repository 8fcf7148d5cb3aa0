"""
External service connector package marker.
"""

from app.connectors.base import BaseHTTPConnector, ConnectorRequestError
from app.connectors.capture_connector import CaptureServiceConnector

__all__ = [
    "BaseHTTPConnector",
    "CaptureServiceConnector",
    "ConnectorRequestError",
]
