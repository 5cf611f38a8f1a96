"""HTTP service exposing change extraction and task validation."""

import logging
import os
import time
from typing import Any, Literal

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from pydantic import BaseModel

from . import __version__
from .config import Settings, get_settings
from .git_utils import RepositoryStateError
from .report import build_detailed_report, generate_report, save_report, to_jsonable
from .rules import RulesFileError, parse_task_rules
from .runner import collect_changes, run_validation
from .validator import ValidationError, preflight_check

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


class ChangesRequest(BaseModel):
    """Request body for change extraction."""

    repository_path: str | None = None
    base_branch: str | None = None
    rules: dict[str, Any] | None = None  # optional, only used for relevance


class ValidationRequest(BaseModel):
    """Request body for validation and report generation."""

    rules: dict[str, Any]
    repository_path: str | None = None
    base_branch: str | None = None
    model: str | None = None
    report_type: Literal["detailed", "summary"] = "detailed"


health_router = APIRouter(prefix="/health", tags=["health"])
validation_router = APIRouter(prefix="/validation", tags=["validation"])


@health_router.get("")
async def health(settings: Settings = Depends(get_settings)):
    """Liveness check."""
    return {
        "success": True,
        "message": "Task validator is running",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": settings.ENVIRONMENT,
        "version": __version__,
    }


@health_router.get("/ready")
async def ready(settings: Settings = Depends(get_settings)):
    """Readiness check: the configured model CLI must be installed."""
    missing = preflight_check([settings.MODEL])
    if missing:
        logger.warning("Model CLI not available: %s", ", ".join(missing))
        raise HTTPException(
            status_code=503,
            detail={"message": "Service not ready", "missing_models": missing},
        )
    return {"success": True, "message": "Service is ready"}


def _parse_rules(data: dict[str, Any]):
    try:
        return parse_task_rules(data)
    except RulesFileError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@validation_router.post("/changes")
def changes(request: ChangesRequest, settings: Settings = Depends(get_settings)):
    """Change set for a repository, optionally filtered by the rules' relevant paths."""
    task_rules = _parse_rules(request.rules) if request.rules is not None else None
    base_branch = request.base_branch or settings.DEFAULT_BASE_BRANCH

    try:
        change_set = collect_changes(request.repository_path or os.getcwd(), base_branch, task_rules)
    except (RepositoryStateError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"success": True, "data": to_jsonable(change_set)}


async def _validate(request: ValidationRequest, settings: Settings):
    task_rules = _parse_rules(request.rules)
    model = request.model or settings.MODEL

    missing = preflight_check([model])
    if missing:
        raise HTTPException(status_code=503, detail=f"Model CLI not available: {model}")

    try:
        return await run_validation(
            task_rules,
            request.repository_path or os.getcwd(),
            request.base_branch or settings.DEFAULT_BASE_BRANCH,
            model=model,
            timeout=settings.VALIDATION_TIMEOUT,
            logs_dir=settings.LOGS_DIR,
        )
    except (RepositoryStateError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TimeoutError as e:
        raise HTTPException(
            status_code=504,
            detail=f"Validation timed out after {settings.VALIDATION_TIMEOUT}s",
        ) from e
    except ValidationError as e:
        logger.error("Validation error: %s", e)
        raise HTTPException(status_code=502, detail=str(e)) from e


def _save(report: dict[str, Any], settings: Settings) -> str | None:
    try:
        return save_report(report, settings.REPORTS_DIR)
    except OSError as e:
        logger.warning("Could not save report: %s", e)
        return None


@validation_router.post("/validate")
async def validate(request: ValidationRequest, settings: Settings = Depends(get_settings)):
    """Validate rules against a repository's changes."""
    run = await _validate(request, settings)
    detailed = build_detailed_report(run.result)
    return {
        "success": True,
        "data": to_jsonable(run.result),
        "report": {
            "summary": detailed["summary"],
            "analysis": detailed["analysis"],
            "report_path": _save(detailed, settings),
        },
        "warnings": run.change_set.errors,
    }


@validation_router.post("/report")
async def report(request: ValidationRequest, settings: Settings = Depends(get_settings)):
    """Validate and return the report body (detailed reports are also saved)."""
    run = await _validate(request, settings)

    if request.report_type == "summary":
        return {"success": True, "report": generate_report(run.result)}

    detailed = build_detailed_report(run.result)
    return {"success": True, "report": detailed, "report_path": _save(detailed, settings)}


app = FastAPI(
    title="Task Validator API",
    version=__version__,
    description="Validate task business rules against the Git changes on a branch",
)
app.include_router(health_router, prefix="/api")
app.include_router(validation_router, prefix="/api")
