"""
Thread processing package for the inbox rules engine
"""
from .service import EmailProcessingService

__all__ = ['EmailProcessingService']
