from fastapi import APIRouter

from app.ai.factory import get_completion_client

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    ai_status = "configured" if get_completion_client().enabled else "not_configured"
    return {"status": "healthy", "ai": ai_status}
