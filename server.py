import uuid
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import List, Literal, Optional, Dict, Any

from contextlib import asynccontextmanager
from config import Settings, load_settings
from storage.adapter import AsyncStorageAdapter
from storage.database import Database
from data_models import FaultTestCase, SyntaxTestCase, TestCase, TestRun
from diff_engine import DiffEngine
from errors import ParseError
from exporters import fault_cases_to_csv, syntax_cases_to_csv, test_cases_to_csv
from fault_extractor import parse_fault_tree
from merge_engine import MergeEngine
from orchestrator import CCTM, TestGenerationOrchestrator
from partition_builder import PartitionBuilder
from syntax_generator import generate_syntax_tests
from tree_builder import TreeBuilder, group_by_classification, tree_stats
from xml_ingestion import parse
import logging

logger = logging.getLogger("server")

# Global state
settings: Settings = Settings()
db: Optional[Database] = None
storage: Optional[AsyncStorageAdapter] = None
orchestrator = TestGenerationOrchestrator()

# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------

def require_storage() -> AsyncStorageAdapter:
    if storage is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return storage


def parse_tree(xml: str):
    return TreeBuilder().build(parse(xml))


def error_body(error: str, detail: Optional[str] = None) -> Dict[str, Any]:
    body = {"success": False, "error": error}
    if detail:
        body["detail"] = detail
    return body


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ----------------------------------------------------------------------------
# Pydantic Models
# ----------------------------------------------------------------------------

class XmlRequest(BaseModel):
    xml: str

class MergeRequest(BaseModel):
    existing_xml: str
    incoming_xml: str

class DiffRequest(BaseModel):
    old_xml: str
    new_xml: str

class GenerateRequest(BaseModel):
    xml: str
    system_name: Optional[str] = None
    threshold: Optional[int] = None
    cap: Optional[int] = None
    seed: Optional[int] = None
    only_changed: bool = False
    mode: Literal["cctm", "ecp"] = CCTM

class FaultTreeRequest(BaseModel):
    xml: str
    system_name: Optional[str] = None

class SyntaxRequest(BaseModel):
    xml: str
    system_name: Optional[str] = None
    seed: Optional[int] = None

class SystemListItem(BaseModel):
    name: str
    useCaseName: Optional[str] = None
    variables: int
    updatedAt: Optional[str] = None

class SystemListResponse(BaseModel):
    systems: List[SystemListItem]

# ----------------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    global settings, db, storage
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    logger.info(f"Connecting to database: {settings.database_url.split('@')[-1]}")
    db = Database(settings.database_url)
    await db.create_tables()
    storage = AsyncStorageAdapter(db)

    yield

    # Shutdown
    if db:
        await db.close()
    db = None
    storage = None

app = FastAPI(title="CCTM Test Generation API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------------------------------------------------------------
# Error handlers
# ----------------------------------------------------------------------------

@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    logger.info(f"Rejected document on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content=error_body(exc.message, exc.detail))

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content=error_body("Internal server error", str(exc)))

# ----------------------------------------------------------------------------
# Classification tree endpoints
# ----------------------------------------------------------------------------

@app.post("/cctm/parse")
async def parse_classification_tree(request: XmlRequest):
    tree = parse_tree(request.xml)
    return {
        "success": True,
        "tree": tree.to_dict(),
        "variables": [v.to_dict() for v in tree.variables],
        "stats": tree_stats(tree),
        "classifications": [
            {"classification": label, "variables": names}
            for label, names in group_by_classification(tree).items()
        ],
    }

@app.post("/cctm/merge")
async def merge_classification_trees(request: MergeRequest):
    result = MergeEngine().merge(parse_tree(request.existing_xml), parse_tree(request.incoming_xml))
    return {
        "success": True,
        "merged": result.merged.to_dict(),
        "warnings": [w.to_dict() for w in result.warnings],
    }

@app.post("/cctm/diff")
async def diff_classification_trees(request: DiffRequest):
    report = DiffEngine().compare(parse_tree(request.old_xml), parse_tree(request.new_xml))
    return {"success": True, "diff": report.to_dict()}

@app.post("/cctm/partitions")
async def build_partitions(request: XmlRequest):
    tree = parse_tree(request.xml)
    partitions = PartitionBuilder().build_display(tree.variables, tree.output)
    return {"success": True, "partitions": [p.to_dict() for p in partitions]}

@app.post("/cctm/generate")
async def generate_test_cases(request: GenerateRequest):
    """Generate test cases; with a system name the stored snapshot is used as baseline."""
    baseline = None
    if request.system_name:
        record = await require_storage().load_system(request.system_name)
        if record is not None:
            baseline = record.tree
            logger.info(f"Using stored snapshot of '{request.system_name}' as baseline")

    threshold = request.threshold or settings.threshold
    result = await run_in_threadpool(
        orchestrator.generate,
        request.xml,
        threshold=threshold,
        baseline=baseline,
        cap=request.cap or settings.reduction_cap,
        seed=request.seed if request.seed is not None else settings.random_seed,
        only_changed=request.only_changed,
        mode=request.mode,
    )

    body = result.to_dict()
    if storage is not None:
        if request.system_name:
            await storage.save_system(request.system_name, result.incoming)
        run = TestRun(
            id=str(uuid.uuid4()),
            kind=request.mode,
            system_name=request.system_name,
            test_cases=[tc.to_dict() for tc in result.test_cases],
            stats=result.stats,
            diff_summary=result.diff.summary,
        )
        body["runId"] = await storage.save_run(run)
    return body

# ----------------------------------------------------------------------------
# Fault tree endpoints
# ----------------------------------------------------------------------------

@app.post("/fta/generate")
async def generate_fault_scenarios(request: FaultTreeRequest):
    result = await run_in_threadpool(parse_fault_tree, request.xml)
    body = {"success": True, **result.to_dict()}
    if storage is not None:
        run = TestRun(
            id=str(uuid.uuid4()),
            kind="fta",
            system_name=request.system_name,
            test_cases=[tc.to_dict() for tc in result.test_cases],
            stats={"total": len(result.test_cases), "nodes": len(result.nodes), "edges": len(result.edges)},
        )
        body["runId"] = await storage.save_run(run)
    return body

# ----------------------------------------------------------------------------
# Syntax endpoints
# ----------------------------------------------------------------------------

@app.post("/syntax/generate")
async def generate_syntax_cases(request: SyntaxRequest):
    seed = request.seed if request.seed is not None else settings.random_seed
    cases = await run_in_threadpool(generate_syntax_tests, request.xml, seed)
    body = {"success": True, "testCases": [c.to_dict() for c in cases]}
    if storage is not None:
        run = TestRun(
            id=str(uuid.uuid4()),
            kind="syntax",
            system_name=request.system_name,
            test_cases=[c.to_dict() for c in cases],
            stats={"total": len(cases)},
        )
        body["runId"] = await storage.save_run(run)
    return body

# ----------------------------------------------------------------------------
# Systems and runs
# ----------------------------------------------------------------------------

@app.get("/systems", response_model=SystemListResponse)
async def list_systems():
    systems = await require_storage().list_systems()
    return SystemListResponse(systems=[SystemListItem(**s) for s in systems])

@app.get("/systems/{name}")
async def get_system(name: str):
    record = await require_storage().load_system(name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"System {name} not found")
    return {"success": True, **record.to_dict()}

@app.delete("/systems/{name}")
async def delete_system(name: str):
    deleted = await require_storage().delete_system(name)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"System {name} not found")
    logger.info(f"Deleted system {name}")
    return {"success": True, "deleted": name}

@app.get("/systems/{name}/runs")
async def list_system_runs(name: str, limit: int = 20):
    runs = await require_storage().list_runs(name, limit)
    return {
        "success": True,
        "runs": [
            {"id": r.id, "kind": r.kind, "stats": r.stats, "createdAt": r.to_dict()["createdAt"]}
            for r in runs
        ],
    }

@app.get("/runs/{run_id}")
async def get_run(run_id: str):
    run = await require_storage().load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return {"success": True, **run.to_dict()}

@app.get("/runs/{run_id}/csv")
async def export_run_csv(run_id: str):
    run = await require_storage().load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    if run.kind == "fta":
        content = fault_cases_to_csv([FaultTestCase.from_dict(tc) for tc in run.test_cases])
    elif run.kind == "syntax":
        content = syntax_cases_to_csv([SyntaxTestCase.from_dict(tc) for tc in run.test_cases])
    else:
        content = test_cases_to_csv([TestCase.from_dict(tc) for tc in run.test_cases])
    return csv_response(content, f"test_cases_{run_id}.csv")

@app.get("/runs/{run_id}/syntax-csv")
async def export_syntax_csv(run_id: str):
    run = await require_storage().load_run(run_id)
    if run is None or run.kind != "syntax":
        raise HTTPException(status_code=404, detail=f"Syntax run {run_id} not found")
    content = syntax_cases_to_csv([SyntaxTestCase.from_dict(tc) for tc in run.test_cases])
    return csv_response(content, f"syntax-{run_id}.csv")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
