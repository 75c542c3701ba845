from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Store: can count live sessions.
    Registry: at least one tool is registered.
    """
    svc = request.app.state.gateway
    try:
        sessions = await svc.session_count()
    except Exception as e:
        return {"ready": False, "store": False, "tools": None, "error": str(e)}

    tools = len(svc.registry.all())
    return {"ready": tools > 0, "store": True, "sessions": sessions, "tools": tools}
