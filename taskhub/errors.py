"""Error taxonomy shared by the platform services, the stores and the API.

Every error carries a human-readable ``detail`` (what the stores record in
their ``error`` state) and the HTTP status the API answers with.
"""


class TaskHubError(Exception):
    status_code = 500
    default_detail = "Unexpected error"

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AuthRequired(TaskHubError):
    status_code = 401
    default_detail = "You must be logged in"


class NotFound(TaskHubError):
    status_code = 404
    default_detail = "Not found"


class ItemNotFound(NotFound):
    default_detail = "Shopping item not found"


class PermissionDenied(TaskHubError):
    status_code = 403
    default_detail = "Permission denied"


class CreatorCannotLeave(PermissionDenied):
    default_detail = "Channel creator cannot leave the channel"


class CannotDemoteCreator(PermissionDenied):
    default_detail = "Cannot demote the channel creator"


class CannotRemoveCreator(PermissionDenied):
    default_detail = "Cannot remove the channel creator"


class NotPermitted(PermissionDenied):
    default_detail = "You can only message users who are in the same channels as you"


class AlreadyExists(TaskHubError):
    status_code = 409
    default_detail = "Already exists"


class AlreadyMember(AlreadyExists):
    default_detail = "You are already a member of this channel"


class InvalidInput(TaskHubError):
    status_code = 400
    default_detail = "Invalid input"


class InvalidCode(InvalidInput):
    default_detail = "Invalid invite code"


class WrongChannelType(InvalidInput):
    default_detail = "Wrong channel type for this operation"


class NotAMember(InvalidInput):
    default_detail = "User must be a member of the channel first"


class OperationInProgress(InvalidInput):
    status_code = 409
    default_detail = "This operation is already in progress"


class ProviderError(TaskHubError):
    status_code = 502
    default_detail = "Backend service is unavailable, please try again later"
