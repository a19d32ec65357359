from fastapi import FastAPI

from taskpulse.api.routes_health import router as health_router
from taskpulse.api.routes_jobs import router as jobs_router
from taskpulse.api.routes_tasks import router as tasks_router

app = FastAPI(title="taskpulse")

app.include_router(health_router)
app.include_router(jobs_router)
app.include_router(tasks_router)
