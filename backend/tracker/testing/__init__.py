"""
Shared test utilities and factories.

Re-exports the factory functions for convenient imports:
    from tracker.testing import create_user, create_task, get_auth_headers
"""

from tracker.testing.factories import (
    create_comment,
    create_department,
    create_device_token,
    create_subtask,
    create_task,
    create_time_entry,
    create_user,
    get_auth_headers,
    get_auth_token,
    get_or_create_permission,
    grant_permissions,
)
from tracker.testing.transports import RecordingMailTransport, RecordingPushTransport

__all__ = [
    "RecordingMailTransport",
    "RecordingPushTransport",
    "create_comment",
    "create_department",
    "create_device_token",
    "create_subtask",
    "create_task",
    "create_time_entry",
    "create_user",
    "get_auth_headers",
    "get_auth_token",
    "get_or_create_permission",
    "grant_permissions",
]
