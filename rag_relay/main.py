from fastapi import FastAPI, HTTPException, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware

from rag_relay.api.routes.chat import router as chat_router
from rag_relay.core.config import settings
from rag_relay.core.logging import log_startup_info, log_shutdown_info, get_logger
from rag_relay.models.response import HealthCheckResponse, ResponseStatus
from rag_relay.services.chat_service import ChatService, get_chat_service

logger = get_logger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(chat_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    log_startup_info()
    if get_chat_service().retriever.ping():
        logger.info("Connected to Elasticsearch")
    logger.info("Application startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    log_shutdown_info()


@app.get("/", response_class=PlainTextResponse)
async def root():
    return f"{settings.APP_NAME} server is running"


@app.get("/health", response_model=HealthCheckResponse)
def health(chat_service: ChatService = Depends(get_chat_service)):
    """Health check endpoint: search index reachability and model info."""
    try:
        report = chat_service.health()
    except Exception as e:
        logger.error(f"Health check error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    status = ResponseStatus.OK if report["search_index_ok"] else ResponseStatus.DEGRADED
    return JSONResponse(
        status_code=200,
        content=HealthCheckResponse(status=status, **report).model_dump(mode="json"),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rag_relay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
    )
