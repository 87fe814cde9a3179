# shipexpress/core/role_guard.py

from shipexpress.core.errors import AuthorizationError

CUSTOMER = "customer"
STAFF = "staff"
AGENT = "agent"
ADMIN = "admin"

ALL_ROLES = [CUSTOMER, STAFF, AGENT, ADMIN]

# Roles that receive back-office notifications (new shipments, issues)
BACK_OFFICE_ROLES = (STAFF, ADMIN)


# ==================================================
# OPERATION → ROLES ALLOWED TO INVOKE IT
# ==================================================
OPERATION_ROLE_AUTHORITY = {
    # Customer portal
    "create_shipment": {CUSTOMER},
    "report_issue": {CUSTOMER},

    # Staff / admin portal
    "approve_shipment": {STAFF, ADMIN},
    "reject_shipment": {STAFF, ADMIN},
    "cancel_shipment": {ADMIN},
    "assign_agent": {STAFF, ADMIN},
    "resolve_issue": {STAFF, ADMIN},

    # Agent portal
    "accept_request": {AGENT},
    "confirm_pickup": {AGENT},
    "mark_in_transit": {AGENT},
    "update_current_location": {AGENT},
    "mark_delivered": {AGENT},
}

# Operations that must be performed by the agent the shipment is assigned to
AGENT_OWNED_OPERATIONS = {
    "accept_request",
    "confirm_pickup",
    "mark_in_transit",
    "update_current_location",
    "mark_delivered",
}


def validate_role_authority(role: str, operation: str) -> None:
    """
    Validate whether a role is authorized to invoke an operation.
    """
    allowed_roles = OPERATION_ROLE_AUTHORITY.get(operation, set())

    if role not in allowed_roles:
        raise AuthorizationError(
            f"Role '{role}' is not allowed to perform '{operation}'"
        )


def validate_agent_ownership(user_id: str, operation: str, shipment) -> None:
    """
    Agents may only act on shipments assigned to them.
    """
    if operation not in AGENT_OWNED_OPERATIONS:
        return

    if shipment.agent_id != user_id:
        raise AuthorizationError(
            f"Shipment '{shipment.id}' is not assigned to agent '{user_id}'"
        )
