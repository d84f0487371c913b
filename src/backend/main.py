"""HTTP backend - Terraform remote state and locking over ZooKeeper."""

import secrets
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.requests import ClientDisconnect

from .config import Settings
from .errors import ErrorKind, InvalidNameError, StoreError
from .logging import configure_logging
from .state_store import StateStore

logger = structlog.get_logger()
settings = Settings()
security = HTTPBasic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    configure_logging(settings.log_level, settings.log_json)
    logger.info("Starting zk state backend", zks=settings.zk_endpoints)

    app.state.store = StateStore(
        settings.zk_endpoints,
        timeout=settings.zk_connect_timeout_seconds,
    )

    yield

    logger.info("Shutting down zk state backend")


app = FastAPI(
    title="ZooKeeper Terraform Backend",
    description="Terraform HTTP remote state and locking backed by ZooKeeper",
    version="0.1.0",
    lifespan=lifespan,
)


def require_credentials(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Check HTTP basic credentials against the configured pair."""
    valid_user = secrets.compare_digest(
        credentials.username.encode(), settings.auth_username.encode()
    )
    valid_password = secrets.compare_digest(
        credentials.password.encode(), settings.auth_password.encode()
    )
    if not (valid_user and valid_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Surface the error text; only a missing node is a 404."""
    if exc.kind is ErrorKind.NOT_EXIST:
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return PlainTextResponse(exc.message, status_code=status_code)


@app.exception_handler(InvalidNameError)
async def invalid_name_handler(request: Request, exc: InvalidNameError):
    return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)


async def read_body(request: Request) -> bytes:
    """Read the whole request payload into memory."""
    try:
        return await request.body()
    except ClientDisconnect as exc:
        logger.error("Cannot read request body", path=request.url.path)
        raise StoreError(ErrorKind.WRITE, reason="client disconnected") from exc


def get_store(request: Request) -> StateStore:
    return request.app.state.store


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "zk-state-backend"}


@app.get("/{name}", dependencies=[Depends(require_credentials)])
async def get_state(name: str, store: StateStore = Depends(get_store)):
    """Return the stored state document."""
    state = await run_in_threadpool(store.get, name)
    return Response(content=state, media_type="application/json")


@app.post("/{name}", dependencies=[Depends(require_credentials)])
async def update_state(
    name: str,
    request: Request,
    store: StateStore = Depends(get_store),
):
    """Create or overwrite the state document."""
    state = await read_body(request)
    await run_in_threadpool(store.update, name, state)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/{name}", dependencies=[Depends(require_credentials)])
async def delete_state(name: str, store: StateStore = Depends(get_store)):
    await run_in_threadpool(store.delete, name)
    return Response(status_code=status.HTTP_200_OK)


@app.api_route(
    "/{name}",
    methods=["LOCK"],
    dependencies=[Depends(require_credentials)],
    include_in_schema=False,
)
async def lock_state(
    name: str,
    request: Request,
    store: StateStore = Depends(get_store),
):
    """Take the lock, or answer 423 with the current holder's lockinfo."""
    lockinfo = await read_body(request)
    result = await run_in_threadpool(store.lock, name, lockinfo)

    status_code = status.HTTP_423_LOCKED if result.already_locked else status.HTTP_200_OK
    return Response(
        content=result.lockinfo,
        status_code=status_code,
        media_type="application/json",
    )


@app.api_route(
    "/{name}",
    methods=["UNLOCK"],
    dependencies=[Depends(require_credentials)],
    include_in_schema=False,
)
async def unlock_state(name: str, store: StateStore = Depends(get_store)):
    await run_in_threadpool(store.unlock, name)
    return Response(status_code=status.HTTP_200_OK)


def cli():
    """CLI entry point."""
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    cli()
