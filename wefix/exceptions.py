from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

class APIException(HTTPException):
    """HTTPException that carries a machine-readable ``data`` payload for the client."""

    def __init__(self, status_code: int, detail: str, data: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.data = data

def create_error_response(error_message: str, data: Optional[Dict[str, Any]] = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": data,
        "error": error_message
    }

def create_success_response(message: str, data: Optional[Dict[str, Any]] = None) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "message": message,
        "data": data or {},
    }

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required")
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail), getattr(exc, "data", None)),
        headers=getattr(exc, "headers", None),
    )
