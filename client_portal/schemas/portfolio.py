"""View models the aggregation layer builds from store rows.

Every status is parsed into its closed vocabulary on the way in, so pages and
API payloads never carry raw store strings.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from ..core.statuses import (
    BacklogStatus,
    DeliveryStatus,
    IncidentStatus,
    InvoiceStatus,
    MilestoneStatus,
    Priority,
    ProjectStatus,
    TicketStatus,
)

BacklogStatusField = Annotated[BacklogStatus, BeforeValidator(BacklogStatus.parse)]
MilestoneStatusField = Annotated[MilestoneStatus, BeforeValidator(MilestoneStatus.parse)]
DeliveryStatusField = Annotated[DeliveryStatus, BeforeValidator(DeliveryStatus.parse)]
IncidentStatusField = Annotated[IncidentStatus, BeforeValidator(IncidentStatus.parse)]
TicketStatusField = Annotated[TicketStatus, BeforeValidator(TicketStatus.parse)]
InvoiceStatusField = Annotated[InvoiceStatus, BeforeValidator(InvoiceStatus.parse)]
PriorityField = Annotated[Priority, BeforeValidator(Priority.parse)]


class _View(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class BacklogView(_View):
    id: str
    project_id: str
    milestone_id: Optional[str] = None
    task: str
    description: Optional[str] = None
    status: BacklogStatusField = BacklogStatus.UNKNOWN
    estimate: Optional[str] = None
    invoiced: bool = False
    assigned_user_name: Optional[str] = None
    priority: Optional[str] = None


class MilestoneView(_View):
    id: str
    project_id: str
    title: str
    due_date: Optional[str] = None
    date_end: Optional[str] = None
    status: MilestoneStatusField = MilestoneStatus.UNKNOWN
    backlog_items: list[BacklogView] = Field(default_factory=list)
    progress: int = 0
    total_tasks: int = 0


class DeliveryView(_View):
    id: str
    project_id: str
    milestone_id: Optional[str] = None
    programmer_id: Optional[str] = None
    loom_url: Optional[str] = None
    testing_url: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    status: DeliveryStatusField = DeliveryStatus.UNKNOWN
    review_notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    history: list[dict[str, Any]] = Field(default_factory=list)


class IncidentView(_View):
    id: str
    project_id: str
    title: str
    description: Optional[str] = None
    status: IncidentStatusField = IncidentStatus.UNKNOWN
    priority: PriorityField = Priority.UNKNOWN
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    assigned_to: Optional[str] = None
    reported_by: Optional[str] = None


class TicketView(_View):
    id: str
    project_id: str
    title: str
    description: Optional[str] = None
    status: TicketStatusField = TicketStatus.UNKNOWN
    priority: PriorityField = Priority.UNKNOWN
    client_visible: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    assigned_to: Optional[str] = None


class InvoiceView(_View):
    id: str
    project_id: str
    project_name: Optional[str] = None
    number: Optional[str] = None
    date: Optional[str] = None
    due_date: Optional[str] = None
    currency: Optional[str] = None
    items: list[dict[str, Any]] = Field(default_factory=list)
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    total: Optional[str] = None
    status: InvoiceStatusField = InvoiceStatus.UNKNOWN


class ProjectView(_View):
    id: str
    company_id: Optional[str] = None
    name: str
    client: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PENDING
    progress: int = 0
    pending_deliveries: int = 0
    pending_tickets: int = 0
    pending_incidents: int = 0
    milestones: list[MilestoneView] = Field(default_factory=list)
    backlog: list[BacklogView] = Field(default_factory=list)
    tickets: list[TicketView] = Field(default_factory=list)
    deliveries: list[DeliveryView] = Field(default_factory=list)
    incidents: list[IncidentView] = Field(default_factory=list)
    invoices: list[InvoiceView] = Field(default_factory=list)
    placeholder: bool = False


class ProjectFetchError(BaseModel):
    project_id: str
    message: str


class FlatDelivery(BaseModel):
    delivery: DeliveryView
    project_id: str
    project_name: str
    milestone: Optional[MilestoneView] = None
    related_incidents: list[IncidentView] = Field(default_factory=list)
    invoiced: bool = False
    actions: list[str] = Field(default_factory=list)


class FlatIncident(BaseModel):
    incident: IncidentView
    project_id: str
    project_name: str


class FlatTicket(BaseModel):
    ticket: TicketView
    project_id: str
    project_name: str


class FlatInvoice(BaseModel):
    invoice: InvoiceView
    project_id: str
    project_name: str
    amount: Decimal = Decimal("0.00")


class PortfolioSummary(BaseModel):
    projects: int = 0
    active_projects: int = 0
    completed_projects: int = 0
    average_progress: int = 0
    pending_deliveries: int = 0
    pending_tickets: int = 0
    pending_incidents: int = 0
    outstanding_invoices: int = 0
    degraded: bool = False


class PortfolioOut(BaseModel):
    company_id: str
    projects: list[ProjectView]
    failed: list[ProjectFetchError] = Field(default_factory=list)
    summary: PortfolioSummary
