"""Workspace access policy shared by aiya tools."""

from aiya.security.workspace import WorkspaceSecurity, WorkspaceSecurityError

__all__ = ["WorkspaceSecurity", "WorkspaceSecurityError"]
