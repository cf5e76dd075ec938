from sqlmodel import SQLModel  # noqa: F401

from tracker.models.department import Department  # noqa: F401
from tracker.models.device_token import DeviceToken  # noqa: F401
from tracker.models.notification import Notification  # noqa: F401
from tracker.models.task import Attachment, Comment, Task, TimeEntry  # noqa: F401
from tracker.models.user import Permission, User, UserPermission  # noqa: F401
