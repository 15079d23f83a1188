from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from typing import Optional, Any, Dict
from pydantic import BaseModel


def build_response(
    status_code: int,
    status: str = None,
    message: str = None,
    data: Any = None,
    error: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Response:
    if status_code == 204:
        return Response(status_code=204)

    response = {}

    if status is not None:
        response["status"] = status

    if message is not None:
        response["message"] = message

    if data is not None:
        # Pydantic models (or lists of them) go through their JSON mode so
        # Decimal and datetime fields serialize the same way everywhere
        if isinstance(data, BaseModel):
            response["data"] = data.model_dump(mode="json")
        elif isinstance(data, list) and all(isinstance(item, BaseModel) for item in data):
            response["data"] = [item.model_dump(mode="json") for item in data]
        else:
            response["data"] = jsonable_encoder(data)

    if error is not None:
        response["error"] = error

    if details is not None:
        response["details"] = jsonable_encoder(details)

    return JSONResponse(
        content=response,
        status_code=status_code,
        media_type="application/json"
    )
