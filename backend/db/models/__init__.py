"""Database models for the commerce automation engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.store import Store
from db.models.contact import Contact
from db.models.checkout import Checkout
from db.models.workflow import Workflow
from db.models.execution import WorkflowExecution
from db.models.processed_event import ProcessedEvent
from db.models.campaign import Campaign

__all__ = [
    "Store",
    "Contact",
    "Checkout",
    "Workflow",
    "WorkflowExecution",
    "ProcessedEvent",
    "Campaign",
]
