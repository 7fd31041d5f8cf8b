"""
Processors module.
Contains the business logic run for each queue.
"""

from genqueue.processors.base import BaseProcessor
from genqueue.processors.encyclopedia import EncyclopediaProcessor
from genqueue.processors.solutions import SolutionsProcessor

__all__ = ["BaseProcessor", "EncyclopediaProcessor", "SolutionsProcessor"]
