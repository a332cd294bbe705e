"""Main module running FastAPI app."""


import os
import logging
import psycopg
from logging.config import dictConfig
from datetime import datetime
from fastapi import FastAPI, HTTPException, Request, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager
from typing import Any, Generator, AsyncGenerator
from constants import Defaults
from database import get_db
from plan_tree import InvalidPlanError
from query_analyzer import PlanAnalyzer
from middleware import ResponseLoggingMiddleware


LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_HANDLERS = ['console', 'file']

os.makedirs(LOG_DIR, exist_ok=True)


LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
            'stream': 'ext://sys.stdout'
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'standard',
            'filename': os.path.join(LOG_DIR, 'plan_analyzer.log'),
            'maxBytes': 10485760,
            'backupCount': 5,
            'encoding': 'utf-8'
        }
    },
    'loggers': {
        '': {
            'handlers': LOG_HANDLERS,
            'level': LOG_LEVEL,
            'propagate': True
        },
        **{
            name: {
                'handlers': LOG_HANDLERS,
                'level': 'INFO',
                'propagate': False
            }
            for name in ('uvicorn', 'uvicorn.access', 'uvicorn.error')
        }
    }
}

dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)
logger.info("Application logging configured successfully")

app = FastAPI(
    title="Plan Analysis API",
    version="1.0.0",
    description=(
        f"API for analyzing executed PostgreSQL "
        f"query plans"
    )
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(ResponseLoggingMiddleware)


class PlanAnalysisRequest(BaseModel):
    """Body of a plan analysis request."""
    plan: Any
    query: str = ""
    executions_per_month: int = Field(0, ge=0)


def get_connection() -> Generator[psycopg.Connection, None, None]:
    """Database connection for each request."""

    try:
        conn = get_db()
    except (ValueError, psycopg.Error) as e:
        logger.error(f"Database unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail=f"Database unavailable: {e}"
        )

    try:
        yield conn
    finally:
        conn.close()


def get_plan_analyzer() -> PlanAnalyzer:
    """Get PlanAnalyzer instance for each request."""

    return PlanAnalyzer()


def check_database() -> str:
    """Best-effort database status for the health endpoint."""

    try:
        conn = get_db()
    except ValueError:
        return "not configured"
    except psycopg.Error as e:
        logger.warning(f"Database connection failed: {e}")
        return "disconnected"

    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            row = cur.fetchone()
        return "connected" if row and row[0] == 1 else "disconnected"

    except psycopg.Error as e:
        logger.warning(f"Database check failed: {e}")
        return "disconnected"

    finally:
        conn.close()


@app.get("/")
async def root():
    """Root endpoint with API information."""

    logger.info("Root endpoint accessed")
    return {
        "message": "Plan Analysis API",
        "version": "1.0.0",
        "endpoints": {
            "analyze_plan": "POST /analyze/plan",
            "analyze": "POST /analyze",
            "health": "GET /health"
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""

    logger.info("Health check endpoint accessed")

    database = check_database()
    logger.info(f"Health check completed - DB: {database}")

    return {
        "status": "healthy",
        "database": database,
        "timestamp": datetime.now().isoformat()
    }


@app.post("/analyze/plan")
async def analyze_plan(
    request: PlanAnalysisRequest,
    analyzer: PlanAnalyzer = Depends(get_plan_analyzer)
) -> dict:
    """Analyze an EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON) document."""

    logger.info(
        f"Analyze plan request received: "
        f"{request.query[:100]}"
    )

    try:
        analysis_result = analyzer.analyze(
            request.plan,
            request.query,
            request.executions_per_month
        )

    except InvalidPlanError as e:
        logger.error(f"Invalid plan document: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return analysis_result.to_dict()


@app.post("/analyze")
async def analyze_query(
    query: str = Query(
        ...,
        description="SQL query to execute and analyze"
    ),
    executions_per_month: int = Query(
        0,
        ge=0,
        description="Expected executions for cost projection"
    ),
    conn: psycopg.Connection = Depends(get_connection),
    analyzer: PlanAnalyzer = Depends(get_plan_analyzer)
) -> dict:
    """Execute a query under EXPLAIN ANALYZE and analyze its plan."""

    logger.info(
        f"Analyze query request received: "
        f"{query[:100]}..."
    )

    if len(query.strip()) > Defaults.QUERY_LENGTH_LIMIT:
        logger.warning("Query too long for analysis")
        raise HTTPException(
            status_code=400,
            detail="Query is too long for analysis"
        )

    try:
        analysis_result = analyzer.analyze_query(
            conn, query, executions_per_month
        )

    except ValueError as e:
        logger.error(f"Value error in query analysis: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    except psycopg.Error as e:
        logger.error(f"Database error in query analysis: {e}")
        if "timed out" in str(e) or "statement timeout" in str(e):
            raise HTTPException(
                status_code=408,
                detail=(
                    f"Query analysis timed out. "
                    f"The query may be too complex."
                )
            )
        raise HTTPException(
            status_code=500, detail=f"Database error: {e}"
        )

    result_dict = analysis_result.to_dict()

    logger.info(
        f"Query analysis completed - "
        f"Cost: {analysis_result.resource_cost.total_cost}"
    )

    return result_dict


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Exception handler for unhandled exceptions."""

    logger.error(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc)
        }
    )


@asynccontextmanager
async def lifespan(
    app: FastAPI
) -> AsyncGenerator[None, None]:
    """Async context manager for lifecycle events."""

    logger.info("Application startup initiated")

    if os.getenv("DATABASE_URL"):
        logger.info(f"Database status: {check_database()}")
    else:
        logger.warning(
            "DATABASE_URL is not set, only plan documents "
            "can be analyzed"
        )

    yield  # Application runs here

    logger.info("Shutting down Plan Analysis API")


app.router.lifespan_context = lifespan


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Uvicorn server")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
