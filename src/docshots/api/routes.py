import uuid

from fastapi import APIRouter, HTTPException

from ..core.errors import FlowDefinitionError
from ..core.executor.runner import run_job
from ..core.ir.loader import builtin_flow_names, load_builtin_flow
from ..runtime.events import get_bus
from .dto import RunRequest, RunResponse


router = APIRouter()


def _require_flows(req: RunRequest) -> None:
    if not req.flows and not req.definitions:
        raise HTTPException(status_code=400, detail="No flows requested")
    unknown = sorted(set(req.flows) - set(builtin_flow_names()))
    if unknown:
        raise HTTPException(status_code=404, detail=f"Unknown flows: {', '.join(unknown)}")


@router.get("/flows")
def list_flows():
    flows = []
    for name in builtin_flow_names():
        flow = load_builtin_flow(name)
        flows.append({"name": name, "description": flow.description, "steps": len(flow.steps)})
    return {"flows": flows}


@router.post("/runs", response_model=RunResponse)
def run(req: RunRequest) -> RunResponse:
    _require_flows(req)
    try:
        return run_job(req)
    except FlowDefinitionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/runs/async")
def run_async(req: RunRequest):
    _require_flows(req)
    try:
        job_id = str(uuid.uuid4())
        bus = get_bus()
        bus.enqueue({"job_id": job_id, "request": req.model_dump(mode="json")})
        return {"job_id": job_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/jobs/{job_id}")
def get_job(job_id: str):
    try:
        bus = get_bus()
        res = bus.get_result(job_id)
        if not res:
            return {"status": "pending", "job_id": job_id}
        return res
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
