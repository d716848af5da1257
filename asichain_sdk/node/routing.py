"""
Static routing of node API operations to endpoint roles.
"""
from enum import Enum
from typing import NamedTuple


class NodeRole(str, Enum):
    """Which node an operation is sent to"""
    VALIDATOR = "validator"
    READ_ONLY = "read_only"
    ADMIN = "admin"


# Operations sent as POST when they carry a payload
POST_OPERATIONS = frozenset({
    "prepare-deploy",
    "deploy",
    "data-at-name",
    "explore-deploy",
    "propose",
})

# Operations served by the read-only node when sent as GET
READ_ONLY_OPERATIONS = frozenset({
    "explore-deploy",
    "blocks",
    "status",
    "deploy",
    "light-blocks-by-heights",
    "deploy-service",
    "data-at-name",
})


class Route(NamedTuple):
    role: NodeRole
    method: str
    path: str


def operation_head(operation: str) -> str:
    """``blocks/10`` -> ``blocks``"""
    return operation.strip("/").split("/", 1)[0]


def resolve_route(operation: str, has_payload: bool = False, has_admin: bool = False) -> Route:
    """
    Decide role, HTTP method and path for a node operation.

    ``explore-deploy`` is a POST but only reads state, so it always goes to
    the read-only node. ``propose`` prefers the admin node when one exists.
    Anything not known to be a read goes to the validator.

    Args:
        operation: API operation, optionally with a path suffix (``blocks/10``)
        has_payload: Whether a request body is sent
        has_admin: Whether an admin endpoint is configured

    Returns:
        Route for the request
    """
    head = operation_head(operation)
    is_post = has_payload and head in POST_OPERATIONS
    method = "POST" if is_post else "GET"
    path = f"/api/{operation.strip('/')}"

    if head == "propose" and has_admin:
        role = NodeRole.ADMIN
    elif head == "explore-deploy" or (head in READ_ONLY_OPERATIONS and not is_post):
        role = NodeRole.READ_ONLY
    else:
        role = NodeRole.VALIDATOR

    return Route(role=role, method=method, path=path)
