"""
Work Order Intake API
FastAPI application that turns work-order emails and PDFs into structured,
exportable work order records.
"""

import logging
import os
import socket
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from intake.config import get_ai_model_name, is_ai_parsing_enabled
from intake.db import get_supabase_admin
from intake.routers import email_messages, inbound, process_pdf, work_orders

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def _is_usable_lan_ip(ip: str) -> bool:
    """Return True if the IP is a usable LAN address (not loopback, not Docker internal)."""
    if ip.startswith("127."):
        return False
    # Docker bridge network
    if ip.startswith("172."):
        return False
    # Docker Desktop for Mac resolves host.docker.internal to 192.168.65.x
    if ip.startswith("192.168.65."):
        return False
    return True


def get_local_ip() -> Optional[str]:
    """
    Detect the host machine's LAN IP address.

    HOST_IP wins when set (containers cannot see the host's real address);
    otherwise the outbound interface is found with a UDP connect. Returns
    None when detection fails.
    """
    host_ip = os.getenv("HOST_IP", "").strip()
    if host_ip:
        return host_ip

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            ip = s.getsockname()[0]
            if _is_usable_lan_ip(ip):
                return ip
    except OSError:
        logger.debug("LAN IP detection failed", exc_info=True)

    return None


def get_cors_origins() -> List[str]:
    """
    Allowed CORS origins: the local frontend dev server (plus its LAN
    variant) and any comma-separated extras from CORS_ORIGINS, deduplicated
    in order.
    """
    origins = ["http://localhost:3000"]

    local_ip = get_local_ip()
    if local_ip:
        origins.append(f"http://{local_ip}:3000")

    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        origins.extend(o.strip() for o in cors_env.split(",") if o.strip())

    return list(dict.fromkeys(origins))


app = FastAPI(
    title="Work Order Intake API",
    description="Email and PDF work order extraction with AI and rule-based fallback",
    version=API_VERSION,
)

# CORS configuration: origins are resolved at startup from environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(inbound.router, prefix="/api/inbound-email", tags=["inbound"])
app.include_router(email_messages.router, prefix="/api/email-messages", tags=["email-messages"])
app.include_router(work_orders.router, prefix="/api/work-orders", tags=["work-orders"])
app.include_router(process_pdf.router, prefix="/api/process-pdf", tags=["manual"])


@app.on_event("startup")
async def log_startup_urls() -> None:
    """
    Log where the API can be reached. HOST_PORT reports Docker-mapped ports
    correctly; defaults to 8000.
    """
    host_port = os.getenv("HOST_PORT", "8000")
    local_ip = get_local_ip()
    network_line = (
        f"  Network: http://{local_ip}:{host_port}"
        if local_ip
        else "  Network: (unavailable)"
    )
    logger.info(
        "Work Order Intake API running at:\n"
        "  Local:   http://localhost:%s\n"
        "%s",
        host_port,
        network_line,
    )
    if is_ai_parsing_enabled():
        logger.info("AI parsing enabled with server key (model: %s)", get_ai_model_name())
    else:
        logger.info("AI parsing disabled for paid plans: ANTHROPIC_API_KEY not set")


@app.get("/")
async def root():
    return {"message": "Work Order Intake API", "version": API_VERSION}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
def health_db():
    """
    Test the Supabase database connection with a one-row select from
    work_orders. Returns 503 on failure.
    """
    client = get_supabase_admin()
    if client is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        client.table("work_orders").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
