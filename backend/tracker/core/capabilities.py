"""Capability names granted to users through ``user_permissions``.

Capabilities are opaque, flat strings: there is no hierarchy and no
wildcard matching. Only membership tests are ever performed on them.
"""

VIEW_ANY_TASK = "VIEW_ANY_TASK"
VIEW_REPORTS = "VIEW_REPORTS"
CREATE_TASK = "CREATE_TASK"
EDIT_ANY_TASK = "EDIT_ANY_TASK"
UPDATE_OWN_TASK_STATUS = "UPDATE_OWN_TASK_STATUS"
DELETE_ANY_TASK = "DELETE_ANY_TASK"
ADD_COMMENT = "ADD_COMMENT"
CREATE_SUBTASK = "CREATE_SUBTASK"
LOG_TIME_OWN = "LOG_TIME_OWN"
APPROVE_TIME = "APPROVE_TIME"
MANAGE_USERS = "MANAGE_USERS"
