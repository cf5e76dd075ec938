from pydantic import BaseModel, Field


class DeviceRegisterRequest(BaseModel):
    """Request body for registering a push notification token."""

    token: str = Field(min_length=1, max_length=512)


class DeviceUnregisterRequest(BaseModel):
    """Request body for unregistering a push notification token."""

    token: str = Field(min_length=1, max_length=512)


class DeviceResponse(BaseModel):
    """Generic response for device token operations."""

    status: str
