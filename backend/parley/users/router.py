"""User profile router.

Endpoints:
    POST /users - Save a user profile
    GET  /users - List saved profiles
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from parley.errors import ParleyError

from .schemas import UserCreate
from .service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _service(request: Request) -> UserService:
    return request.app.state.users


@router.post("")
async def save_user(request: Request) -> JSONResponse:
    """Save a user profile.

    Validation failures and duplicate emails are reported as
    ``{"success": false, "error": ...}`` with status 400.
    """
    try:
        body = await request.json()
        user = UserCreate.model_validate(body)
        await _service(request).save(user)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse({"success": False, "error": errors}, status_code=400)
    except ValueError:
        return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)
    except ParleyError as exc:
        status_code = 400 if exc.status_code < 500 else exc.status_code
        return JSONResponse({"success": False, "error": exc.message}, status_code=status_code)

    return JSONResponse({"success": True, "message": "User saved successfully"})


@router.get("")
async def list_users(request: Request) -> JSONResponse:
    """List all saved profiles, oldest first."""
    try:
        users = await _service(request).list_users()
    except ParleyError as exc:
        logger.error("[users] Listing failed: %s", exc.message)
        return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)
    return JSONResponse([u.model_dump() for u in users])
