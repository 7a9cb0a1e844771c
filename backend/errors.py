# errors.py — Domain error taxonomy with numeric error codes
# Every error carries a stable numeric code, an HTTP status and a message.
# main.py maps AppError subclasses to {"code", "message"} JSON responses.

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all domain errors."""

    code: int = 0
    http_status: int = 500
    message: str = "Internal error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


# ============================================================
# KINDS
# ============================================================

class NotFoundError(AppError):
    http_status = 404


class ForbiddenError(AppError):
    http_status = 403


class ConflictError(AppError):
    http_status = 409


class PreconditionFailedError(AppError):
    http_status = 412


class InvalidInputError(AppError):
    http_status = 400


class UnauthorizedError(AppError):
    http_status = 401


# ============================================================
# GENERIC (0xxx) / USERS (1xxx) / VALIDATION (2xxx)
# ============================================================

class GenericForbidden(ForbiddenError):
    code = 1
    message = "You're not allowed to do this."


class UsernameExists(InvalidInputError):
    code = 1001
    message = "A user with this username already exists."


class UserEmailExists(InvalidInputError):
    code = 1002
    message = "A user with this email address already exists."


class NoUsernamePassword(InvalidInputError):
    code = 1004
    message = "Please specify a username and a password."


class UserDoesNotExist(NotFoundError):
    code = 1005
    message = "The user does not exist."


class NoPasswordResetToken(InvalidInputError):
    code = 1008
    message = "No token to reset a password provided."


class InvalidPasswordResetToken(InvalidInputError):
    code = 1009
    message = "Invalid or expired password reset token."


class WrongUsernameOrPassword(UnauthorizedError):
    code = 1011
    message = "Wrong username or password."


class InvalidRefreshToken(UnauthorizedError):
    code = 1012
    message = "The refresh token is invalid or belongs to an inactive user."


class InvalidData(InvalidInputError):
    code = 2002
    message = "The request data is invalid."


# ============================================================
# LISTS (3xxx)
# ============================================================

class ListDoesNotExist(NotFoundError):
    code = 3001
    message = "This list does not exist."


class NeedToHaveListReadAccess(ForbiddenError):
    code = 3004
    message = "You need to have read access to this list."


class ListTitleCannotBeEmpty(InvalidInputError):
    code = 3005
    message = "You must provide at least a list title."


class ListShareDoesNotExist(NotFoundError):
    code = 3006
    message = "The list share does not exist."


class ListIsArchived(PreconditionFailedError):
    code = 3008
    message = "This list is archived. Editing or creating new tasks is not possible."


class ListCannotBelongToAPseudoNamespace(PreconditionFailedError):
    code = 3009
    message = "This list cannot belong a dynamically generated namespace."


class ListMustBelongToANamespace(PreconditionFailedError):
    code = 3010
    message = "This list must belong to a namespace."


# ============================================================
# TASKS (4xxx)
# ============================================================

class TaskCannotBeEmpty(InvalidInputError):
    code = 4001
    message = "You must provide at least a task title."


class TaskDoesNotExist(NotFoundError):
    code = 4002
    message = "This task does not exist."


class NoRightToSeeTask(ForbiddenError):
    code = 4005
    message = "You don't have the right to see this task."


class InvalidRelationKind(InvalidInputError):
    code = 4007
    message = "The task relation is invalid."


class RelationAlreadyExists(ConflictError):
    code = 4008
    message = "The task relation already exists."


class RelationTasksCannotBeTheSame(InvalidInputError):
    code = 4010
    message = "You cannot relate a task with itself."


class InvalidSortParam(InvalidInputError):
    code = 4013
    message = "The task sort param is invalid."


class InvalidSortOrder(InvalidInputError):
    code = 4014
    message = "The task sort order is invalid."


# ============================================================
# NAMESPACES (5xxx)
# ============================================================

class NamespaceDoesNotExist(NotFoundError):
    code = 5001
    message = "Namespace not found."


class UserDoesNotHaveAccessToNamespace(ForbiddenError):
    code = 5003
    message = "This user does not have access to the namespace."


class NamespaceNameCannotBeEmpty(InvalidInputError):
    code = 5006
    message = "The namespace name cannot be empty."


class NeedToHaveNamespaceReadAccess(ForbiddenError):
    code = 5009
    message = "You need to have namespace read access to do this."


class TeamDoesNotHaveAccessToNamespace(ForbiddenError):
    code = 5010
    message = "You need to have access to this namespace to do this."


class UserAlreadyHasNamespaceAccess(ConflictError):
    code = 5011
    message = "This user already has access to this namespace."


class NamespaceIsArchived(PreconditionFailedError):
    code = 5012
    message = "The namespaces is archived and can therefore only be accessed read only. This is also true for all lists associated with this namespace."


# ============================================================
# TEAMS (6xxx)
# ============================================================

class TeamNameCannotBeEmpty(InvalidInputError):
    code = 6001
    message = "The team name cannot be empty."


class TeamDoesNotExist(NotFoundError):
    code = 6002
    message = "The team does not exist."


class TeamAlreadyHasAccess(ConflictError):
    code = 6004
    message = "This team already has access."


class UserIsMemberOfTeam(ConflictError):
    code = 6005
    message = "This user is already a member of that team."


class CannotDeleteLastTeamMember(InvalidInputError):
    code = 6006
    message = "You cannot delete the last member of a team."


class TeamDoesNotHaveAccessToList(ForbiddenError):
    code = 6007
    message = "This team does not have access to the list."


# ============================================================
# USER ↔ LIST SHARES (7xxx)
# ============================================================

class UserAlreadyHasAccess(ConflictError):
    code = 7002
    message = "This user already has access to this list."


class UserDoesNotHaveAccessToList(ForbiddenError):
    code = 7003
    message = "This user does not have access to the list."


# ============================================================
# LABELS (8xxx)
# ============================================================

class LabelIsAlreadyOnTask(ConflictError):
    code = 8001
    message = "This label already exists on the task."


class LabelDoesNotExist(NotFoundError):
    code = 8002
    message = "This label does not exist."


class UserHasNoAccessToLabel(ForbiddenError):
    code = 8003
    message = "You don't have access to this label."


# ============================================================
# RIGHTS (9xxx)
# ============================================================

class InvalidRight(InvalidInputError):
    code = 9001
    message = "The right is invalid."


# ============================================================
# KANBAN (10xxx)
# ============================================================

class BucketDoesNotExist(NotFoundError):
    code = 10001
    message = "This bucket does not exist."


class BucketDoesNotBelongToList(InvalidInputError):
    code = 10002
    message = "This bucket does not belong to that list."


class CannotRemoveLastBucket(PreconditionFailedError):
    code = 10003
    message = "You cannot remove the last bucket on this list."


class BucketLimitExceeded(PreconditionFailedError):
    code = 10004
    message = "You cannot add more tasks to this bucket."


class OnlyOneDoneBucketPerList(PreconditionFailedError):
    code = 10005
    message = "There can be only one done bucket per list."


# ============================================================
# LINK SHARES (13xxx)
# ============================================================

class LinkSharePasswordRequired(PreconditionFailedError):
    code = 13001
    message = "This link share requires a password for authentication, but none was provided."


class LinkSharePasswordInvalid(ForbiddenError):
    code = 13002
    message = "The provided link share password is invalid."
