# api/services/errors.py
"""
Failure taxonomy for the contact sync pipeline.

Each error carries the HTTP status the webhook route answers with. Anything
raised from here aborts the request before the contact upsert, except
FieldCreationFailed which the batcher records per field and never re-raises.
"""

from typing import Optional


class ContactSyncError(Exception):
    """Base class for failures that abort a webhook request"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **context):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context = context

    def to_response(self) -> dict:
        return {"status": "error", "message": self.message}


class NoActiveCredential(ContactSyncError):
    status_code = 404


class TokenRefreshFailed(ContactSyncError):
    status_code = 401


class MissingRequiredField(ContactSyncError):
    status_code = 400


class LocationNotFound(ContactSyncError):
    status_code = 404


class LocationTokenFailed(ContactSyncError):
    status_code = 401


class RemoteSchemaFetchFailed(ContactSyncError):
    status_code = 502


class FieldCreationFailed(ContactSyncError):
    status_code = 502

    def __init__(self, field_name: str, message: str):
        super().__init__(message, field_name=field_name)
        self.field_name = field_name


class ContactUpsertFailed(ContactSyncError):
    status_code = 500


# Token service names
NoTokenFound = NoActiveCredential
RefreshFailed = TokenRefreshFailed
