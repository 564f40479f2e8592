from typing import Optional
from fastapi import status
from fastapi.responses import JSONResponse
from library_backend.services.result import ErrorKind

# HTTP status for service errors on routes that cannot answer with an envelope body
ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_ISSUED_BY_USER: status.HTTP_409_CONFLICT,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_RETURNED: status.HTTP_409_CONFLICT,
    ErrorKind.BUSY: status.HTTP_409_CONFLICT,
    ErrorKind.STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.AUTH_FAILED: status.HTTP_401_UNAUTHORIZED,
}

def envelope(result, success_message: Optional[str] = None) -> dict:
    """Project a service result onto the {success, message} envelope."""
    if result.ok:
        return {"success": True, "message": success_message or result.message}
    return {"success": False, "message": result.message}

def error_response(result) -> JSONResponse:
    """Envelope with a matching HTTP status, for reads whose success body is not an envelope."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(result.kind, status.HTTP_400_BAD_REQUEST),
        content={"success": False, "message": result.message},
    )

def message_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})
