from fastapi import APIRouter
from .v1 import presets, workflows

api_router = APIRouter(prefix="/api", tags=["nodeforge"])

api_router.include_router(workflows.router, prefix="/v1", tags=["workflows"])
api_router.include_router(presets.router, prefix="/v1", tags=["presets"])

@api_router.get("/")
def read_root():
    return {"message": "nodeforge is running"}
