"""
Function schemas - the envelope every platform function call arrives in.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class FunctionRequest(BaseModel):
    """
    Body of POST /functions/{name}.

    Example request body:
    {
        "userId": "5f2b...",
        "userEmail": "jane@example.com",
        "functionId": "f-123",
        "params": {"path": "files", "params": {"pageSize": 10}}
    }
    """
    model_config = ConfigDict(populate_by_name=True)

    # user_id: Platform identity; absent for calls that carry their own token
    user_id: Optional[str] = Field(None, alias="userId")

    user_email: Optional[str] = Field(None, alias="userEmail")

    # function_id: Invoking function, forwarded to lifecycle events
    function_id: Optional[str] = Field(None, alias="functionId")

    # params: Function-specific arguments (path, params, body, fileId, code...)
    params: Dict[str, Any] = Field(default_factory=dict)


class FunctionError(BaseModel):
    """Structured error returned instead of a result."""
    code: str
    message: str
    http_status: Optional[int] = Field(None, alias="httpStatus")
