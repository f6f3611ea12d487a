from fastapi import APIRouter
from starlette.requests import Request

router = APIRouter()


@router.get("/health")
def healthcheck(request: Request) -> dict:
    settings = request.app.state.settings
    return {
        "status": "ok",
        "storage": settings.storage_backend,
        "payments": settings.payment_provider,
    }
