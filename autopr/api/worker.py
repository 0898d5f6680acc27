from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/status")
async def get_status(request: Request) -> dict:
    """Worker + 큐 상태 조회"""
    return request.app.state.worker_manager.status()
