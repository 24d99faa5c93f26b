"""
FastAPI server for the IP Locator.

One engine instance serves all requests. Batches are resolved sequentially
and paced, so a batch request can take several seconds per uncached IP; only
one batch runs at a time.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ip_locator.config import Config
from ip_locator.engine import LocatorEngine
from ip_locator.errors import BatchInProgressError, CacheError, ProviderError, ValidationError
from ip_locator.filters import FilterCriteria, apply_filters, filter_options
from ip_locator.parsing import is_valid_ip

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("api")

# ---------------------------------------------------------------------------
# Global engine (created once at startup)
# ---------------------------------------------------------------------------
engine: Optional[LocatorEngine] = None


def load_dotenv(env_path: Path):
    """Load KEY=VALUE lines into os.environ without overriding existing values."""
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, val = line.split("=", 1)
            os.environ.setdefault(key.strip(), val.strip())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the engine on startup, close the cache on shutdown."""
    global engine
    load_dotenv(Path(__file__).parent / ".env")
    engine = LocatorEngine(Config.from_env())
    logger.info("Engine ready")

    yield

    if engine:
        engine.close()
    logger.info("Shutdown complete.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="IP Locator API",
    description="Geolocate batches of IP addresses and cluster them for display.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------
class LocationResponse(BaseModel):
    ip: str
    country: str = ""
    countryCode: str = ""
    region: str = ""
    city: str = ""
    lat: float
    lng: float
    timezone: str = ""
    isp: str = ""
    org: str = ""
    as_: str = Field("", alias="as")
    mobile: bool = False


class HealthResponse(BaseModel):
    status: str
    engine_loaded: bool
    batch_running: bool
    uptime_seconds: float


class CacheResponse(BaseModel):
    cached_ips: int


class BatchRequest(BaseModel):
    ips: Union[str, List[str]] = Field(..., description="Pasted text or a list of lines")
    provider: Optional[str] = None
    bypass_cache: bool = False
    search: str = ""
    country: str = ""
    city: str = ""
    region: str = ""
    isp: str = ""
    timezone: str = ""
    connection: str = ""


_start_time = time.time()


def _require_engine() -> LocatorEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine is still starting. Try again shortly.")
    return engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok" if engine else "loading",
        engine_loaded=engine is not None,
        batch_running=bool(engine and engine.busy),
        uptime_seconds=round(time.time() - _start_time, 1),
    )


@app.get("/locate", response_model=LocationResponse)
def locate(
    ip: str = Query(..., description="IPv4 dotted quad or full-form IPv6"),
    provider: Optional[str] = Query(None, description="Provider name, or auto"),
    bypass_cache: bool = Query(False),
):
    eng = _require_engine()
    ip = ip.strip()
    if not is_valid_ip(ip):
        raise HTTPException(status_code=400, detail=f"Invalid IP address: {ip}")
    if provider and provider != "auto" and provider not in eng.chain.names:
        raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")
    try:
        record = eng.locate(ip, provider=provider, use_cache=not bypass_cache)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=e.message)
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse(content=record.to_dict())


@app.post("/locate/batch")
def locate_batch(req: BatchRequest):
    """
    Resolve a batch in input order. Returns every outcome (filtered if any
    filter field is set; failures are always kept), the clusters, the
    dropdown filter options and a summary.
    """
    eng = _require_engine()
    if req.provider and req.provider != "auto" and req.provider not in eng.chain.names:
        raise HTTPException(status_code=400, detail=f"Unknown provider: {req.provider}")
    try:
        run = eng.locate_batch(req.ips, provider=req.provider, bypass_cache=req.bypass_cache)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    criteria = FilterCriteria(
        search=req.search, country=req.country, city=req.city, region=req.region,
        isp=req.isp, timezone=req.timezone, connection=req.connection,
    )
    payload = run.to_dict()
    payload["outcomes"] = [o.to_dict() for o in apply_filters(run.outcomes, criteria)]
    payload["filter_options"] = filter_options(run.locations)
    return JSONResponse(content=payload)


@app.get("/cache", response_model=CacheResponse)
def cache_count():
    eng = _require_engine()
    try:
        return CacheResponse(cached_ips=eng.cache.count())
    except CacheError as e:
        raise HTTPException(status_code=503, detail=f"Cache unavailable: {e}")


@app.delete("/cache", response_model=CacheResponse)
def cache_clear():
    eng = _require_engine()
    try:
        eng.clear_cache()
        return CacheResponse(cached_ips=eng.cache.count())
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CacheError as e:
        raise HTTPException(status_code=503, detail=f"Failed to clear cache: {e}")
