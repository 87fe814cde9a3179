"""
ISSUE DESK

Purpose:
- Customers file complaints against their own shipments
- Staff / admin resolve them (open → resolved, nothing else)
- Back office is notified on report, the reporter on resolution
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from shipexpress.core.errors import AuthorizationError, InvalidTransitionError, ValidationError
from shipexpress.core.models import ISSUE_OPEN, ISSUE_RESOLVED, ISSUE_TYPES, Issue, Shipment, UserProfile
from shipexpress.core.role_guard import validate_role_authority
from shipexpress.storage.backend import StorageBackend, with_retries

logger = logging.getLogger(__name__)


class IssueDesk:

    def __init__(
        self,
        backend: StorageBackend,
        actor: UserProfile,
        dispatcher=None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backend = backend
        self.actor = actor
        self.dispatcher = dispatcher
        self.clock = clock

    def report_issue(self, shipment_id: str, issue_type: str, description: str) -> Issue:
        validate_role_authority(self.actor.role, "report_issue")

        if issue_type not in ISSUE_TYPES:
            raise ValidationError("issue_type", f"Unknown issue type '{issue_type}'")
        if not description or not description.strip():
            raise ValidationError("description", "Description is required")

        shipment = Shipment.from_dict(self.backend.get_shipment(shipment_id))
        if shipment.customer_id != self.actor.id:
            raise AuthorizationError(f"Shipment '{shipment_id}' does not belong to '{self.actor.id}'")

        stored = self.backend.insert_issue({
            "shipment_id": shipment_id,
            "user_id": self.actor.id,
            "issue_type": issue_type,
            "description": description.strip(),
            "status": ISSUE_OPEN,
            "created_at": self.clock().isoformat(),
        })
        issue = Issue.from_dict(stored)
        logger.info(f"Issue {issue.id} ({issue_type}) reported on {shipment_id}")

        if self.dispatcher is not None:
            self.dispatcher.on_issue_reported(issue, shipment)
        return issue

    def resolve_issue(self, issue_id: str) -> Issue:
        validate_role_authority(self.actor.role, "resolve_issue")

        issue = Issue.from_dict(self.backend.get_issue(issue_id))
        if issue.status != ISSUE_OPEN:
            raise InvalidTransitionError(
                f"Issue {issue_id} is already '{issue.status}'",
                current_state=issue.status,
                target_state=ISSUE_RESOLVED,
            )

        # Resolving twice lands on the same state, so retrying is safe
        stored = with_retries(
            lambda: self.backend.update_issue(
                issue_id,
                {
                    "status": ISSUE_RESOLVED,
                    "resolved_at": self.clock().isoformat(),
                    "resolved_by": self.actor.id,
                },
                expected_status=ISSUE_OPEN,
            ),
            description=f"resolve issue {issue_id}",
        )
        resolved = Issue.from_dict(stored)
        logger.info(f"Issue {issue_id} resolved by {self.actor.id}")

        if self.dispatcher is not None:
            self.dispatcher.on_issue_resolved(resolved)
        return resolved

    def list_issues(self, shipment_id: Optional[str] = None, status: Optional[str] = None) -> List[Issue]:
        issues = [Issue.from_dict(r) for r in self.backend.list_issues(shipment_id)]
        if status is not None:
            issues = [i for i in issues if i.status == status]
        return issues
