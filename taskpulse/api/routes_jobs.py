from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from taskpulse.api.deps import get_scheduler
from taskpulse.jobs.scheduler import JobResult, JobScheduler

router = APIRouter(prefix="/jobs")


def _result_payload(result: Optional[JobResult]) -> Optional[dict]:
    if result is None:
        return None
    payload = asdict(result)
    payload["started_at"] = result.started_at.isoformat()
    payload["finished_at"] = result.finished_at.isoformat()
    payload["value"] = repr(result.value) if result.value is not None else None
    return payload


@router.get("")
def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    running = scheduler.status()
    results = scheduler.last_results()
    return {
        "jobs": {
            name: {"running": running.get(name, False), "last_result": _result_payload(results.get(name))}
            for name in scheduler.job_names
        }
    }


@router.post("/{name}/restart")
def restart_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    if not scheduler.restart(name):
        raise HTTPException(status_code=404, detail=f"Unknown job: {name}")
    return {"ok": True, "name": name, "running": scheduler.status().get(name, False)}


@router.post("/{name}/run")
async def run_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)) -> dict:
    result = await scheduler.run_now(name)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown job: {name}")
    return {"ok": result.ok, "result": _result_payload(result)}
