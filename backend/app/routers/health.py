from fastapi import APIRouter

from app.schemas import HealthResponse

router = APIRouter()


@router.get("/readyz", response_model=HealthResponse)
def readyz() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/livez", response_model=HealthResponse)
def livez() -> HealthResponse:
    return HealthResponse(status="ok")
