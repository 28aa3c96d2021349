"""ORM mappings of the document store collections the portal reads."""

from .company import Company, CompanyMembership, User
from .delivery import Delivery
from .incident import Incident
from .invoice import Invoice
from .project import BacklogItem, Milestone, Project
from .ticket import Ticket, TicketMessage

__all__ = [
    "BacklogItem",
    "Company",
    "CompanyMembership",
    "Delivery",
    "Incident",
    "Invoice",
    "Milestone",
    "Project",
    "Ticket",
    "TicketMessage",
    "User",
]
