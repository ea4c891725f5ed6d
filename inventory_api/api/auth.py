from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from typing import Optional

from .auth_local import issue_actor_token

router = APIRouter(prefix="/auth", tags=["auth"])

class TokenRequest(BaseModel):
    username: Optional[str] = None

@router.post("/token")
async def issue_token(request: Request):
    # Accept a JSON body or a query parameter
    chosen = None
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        if isinstance(body, dict):
            chosen = TokenRequest(**body).username
    if not chosen:
        chosen = request.query_params.get("username")
    if not chosen:
        raise HTTPException(status_code=422, detail="username is required")
    return issue_actor_token(chosen)
