"""
Error kinds raised by the service layer.

Each kind is an HTTPException so FastAPI renders it directly; routers never
catch them. Subclasses narrow the reason while keeping the parent status code.
"""
from fastapi import HTTPException, status


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "You are not allowed to perform this action."):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Resource not found."):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class UserNotFound(NotFound):
    def __init__(self, detail: str = "User not found."):
        super().__init__(detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "The request conflicts with the current state."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidState(Conflict):
    """The target exists but is not in a state that allows the action."""


class InvalidArgument(HTTPException):
    def __init__(self, detail: str = "Invalid argument."):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidRecipient(InvalidArgument):
    def __init__(self, detail: str = "Invalid recipient role"):
        super().__init__(detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
