from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/")
def index(request: Request):
    path = request.app.state.renderer.index_path
    if not path.is_file():
        return PlainTextResponse("not found", status_code=404)
    return FileResponse(path, media_type="text/html; charset=UTF-8")


@router.get("/history")
def history(request: Request):
    renderer = request.app.state.renderer
    snap = renderer.latest
    if snap is None:
        return JSONResponse({"names": list(request.app.state.names), "generated_at": None, "rows": []})
    return JSONResponse(snap.as_dict())
