"""Document and project reads/writes needed by the assistant."""

from typing import Any
from uuid import UUID

from draftwise.core.logging import get_logger
from draftwise.db.supabase_client import get_supabase

logger = get_logger(__name__)


class DocumentNotFoundError(LookupError):
    """Document does not exist or is not owned by the requesting user."""


class ProjectNotFoundError(LookupError):
    """Project does not exist or is not owned by the requesting user."""


def get_document(document_uuid: UUID | str, user_id: str) -> dict[str, Any]:
    """
    Fetch a document owned by the user.

    Args:
        document_uuid: Document UUID
        user_id: Requesting user

    Returns:
        Document row with id, uuid, title, content, project_id, created_at

    Raises:
        DocumentNotFoundError: If missing or owned by someone else
    """
    supabase = get_supabase()

    response = (
        supabase.table("documents")
        .select("id, uuid, title, content, project_id, user_id, created_at")
        .eq("uuid", str(document_uuid))
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )

    if not response.data:
        raise DocumentNotFoundError(f"Document {document_uuid} not found or access denied.")

    return response.data[0]


def get_project(project_uuid: UUID | str, user_id: str) -> dict[str, Any]:
    """
    Fetch a project owned by the user.

    Returns:
        Project row with id, uuid, name, custom_instructions

    Raises:
        ProjectNotFoundError: If missing or owned by someone else
    """
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .select("id, uuid, name, custom_instructions")
        .eq("uuid", str(project_uuid))
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )

    if not response.data:
        raise ProjectNotFoundError(f"Project {project_uuid} not found or access denied.")

    return response.data[0]


def update_document_content(document_uuid: UUID | str, user_id: str, content: str) -> dict[str, Any]:
    """
    Overwrite a document's markup, e.g. after a reviewed rewrite is applied.

    Raises:
        DocumentNotFoundError: If no owned row was updated
    """
    supabase = get_supabase()

    response = (
        supabase.table("documents")
        .update({"content": content})
        .eq("uuid", str(document_uuid))
        .eq("user_id", user_id)
        .execute()
    )

    if not response.data:
        raise DocumentNotFoundError(f"Document {document_uuid} not found or access denied.")

    logger.info(f"Updated document {document_uuid} for user {user_id}")
    return response.data[0]
