"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ovpn_manager.api.dependencies import STATUS_BY_KIND, get_config
from ovpn_manager.api.routes import auth, clients, crl, download
from ovpn_manager.exceptions import CredentialError
from ovpn_manager.utils.logger import setup_logger

# Load configuration
config = get_config()

logger = logging.getLogger("ovpn_manager")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan event handler."""
    # Startup
    setup_logger(config)
    logger.info(f"Starting {config.app.title} v{config.app.version}")
    logger.info(f"PKI directory: {config.paths.pki} (backend: {config.pki.backend})")

    # Ensure logs directory exists
    Path(config.paths.logs).mkdir(parents=True, exist_ok=True)

    yield

    # Shutdown
    logger.info(f"Shutting down {config.app.title}")


# Create FastAPI app
app = FastAPI(
    title=config.app.title,
    version=config.app.version,
    debug=config.app.debug,
    description="""
    **OpenVPN Client Manager** - Issue, revoke and distribute OpenVPN client credentials.

    ## Features
    - Issue client certificates signed by the VPN certificate authority
    - Build self-contained `.ovpn` profiles (CA, certificate, key, tls-auth)
    - Revoke credentials, publish the CRL and reload the VPN daemon
    - List issued and revoked credentials

    ## Documentation
    - **Swagger UI**: `/docs` (you are here)
    - **ReDoc**: `/redoc`
    - **OpenAPI Schema**: `/openapi.json`
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


@app.exception_handler(CredentialError)
async def credential_error_handler(request: Request, exc: CredentialError):
    """Map lifecycle errors raised outside route handlers (e.g. store unavailable)."""
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content={"detail": exc.to_dict()})


# Include API routers
app.include_router(auth.router)
app.include_router(clients.router)
app.include_router(crl.router)
app.include_router(download.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": config.app.version}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="localhost", port=8000, reload=config.app.debug)
