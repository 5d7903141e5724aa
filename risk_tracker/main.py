"""FastAPI main application for Student Risk Tracker."""

import logging
import threading
import traceback
from io import BytesIO, StringIO
from typing import List, Literal, Tuple

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from risk_tracker import config
from risk_tracker.merge import latest_snapshot, mark_fees_paid, merge_students, new_student, record_update, utc_now
from risk_tracker.messages import generate_message_draft
from risk_tracker.models import (
    ConfigResponse,
    ImportResult,
    MessageDraftResponse,
    RiskConfig,
    SampleDataResponse,
    SnapshotImportResult,
    StudentIn,
    StudentRecord,
    StudentStats,
    StudentWithRisk,
    UploadResponse,
    WeeklySnapshot,
)
from risk_tracker.parsers import CSV_TEMPLATE, parse_upload
from risk_tracker.risk import (
    assess,
    compute_stats,
    filter_by_level,
    risk_color,
    risk_label,
    roster_frame,
    score_frame,
    validate_config,
)
from risk_tracker.sample_data import SAMPLE_CSV, sample_students
from risk_tracker.storage import JsonFileBackend, MemoryBackend, RecordStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Risk Tracker", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error_detail = str(exc)
    if config.DEBUG:
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


def jsonable_errors(exc: RequestValidationError) -> List[dict]:
    """Validation errors without the raw exception objects pydantic attaches."""
    return [
        {'loc': list(err.get('loc', ())), 'msg': err.get('msg', ''), 'type': err.get('type', '')}
        for err in exc.errors()
    ]


def _build_store() -> RecordStore:
    if config.STORE_PATH:
        backend = JsonFileBackend(config.STORE_PATH)
        logger.info("Storing records in %s", config.STORE_PATH)
    else:
        backend = MemoryBackend()
        logger.info("STORE_PATH is empty, records are kept in memory only")
    return RecordStore(backend, default_config=config.DEFAULT_RISK_CONFIG)


_store = _build_store()

# Read-modify-write sequences on the store run one at a time
store_lock = threading.Lock()


def get_store() -> RecordStore:
    return _store


def _with_risk(student: StudentRecord, risk_config: RiskConfig) -> StudentWithRisk:
    risk = assess(student, risk_config)
    return StudentWithRisk(
        student=student,
        risk=risk,
        label=risk_label(risk.level),
        color=risk_color(risk.level)
    )


def _get_or_404(store: RecordStore, student_id: str) -> StudentRecord:
    student = store.get(student_id)
    if student is None:
        raise HTTPException(status_code=404, detail=f"Student {student_id} not found")
    return student


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.get("/students", response_model=List[StudentWithRisk])
def list_students(
    level: Literal['all', 'high', 'medium', 'low'] = 'all',
    store: RecordStore = Depends(get_store)
):
    """List students with their current risk, optionally filtered by level."""
    risk_config = store.get_config()
    students = filter_by_level(store.get_all(), level, risk_config)
    return [_with_risk(s, risk_config) for s in students]


@app.post("/students", response_model=StudentWithRisk)
def add_student(payload: StudentIn, store: RecordStore = Depends(get_store)):
    """Add a student by hand."""
    student = new_student(
        name=payload.name,
        attendance_percent=payload.attendance_percent,
        marks_percent=payload.marks_percent,
        fees_paid=payload.fees_paid,
        guardian_phone=payload.guardian_phone,
        now=utc_now()
    )
    with store_lock:
        store.add(student)
    logger.info("Added student %s", student.id)
    return _with_risk(student, store.get_config())


@app.get("/students/{student_id}", response_model=StudentWithRisk)
def get_student(student_id: str, store: RecordStore = Depends(get_store)):
    return _with_risk(_get_or_404(store, student_id), store.get_config())


@app.put("/students/{student_id}", response_model=StudentWithRisk)
def update_student(student_id: str, payload: StudentIn, store: RecordStore = Depends(get_store)):
    """Record new metrics for a student; the previous values stay in history."""
    with store_lock:
        student = record_update(
            _get_or_404(store, student_id),
            attendance_percent=payload.attendance_percent,
            marks_percent=payload.marks_percent,
            fees_paid=payload.fees_paid,
            now=utc_now(),
            name=payload.name,
            guardian_phone=payload.guardian_phone
        )
        store.update(student)
    return _with_risk(student, store.get_config())


@app.delete("/students/{student_id}")
def delete_student(student_id: str, store: RecordStore = Depends(get_store)):
    with store_lock:
        student = _get_or_404(store, student_id)
        store.delete(student_id)
    logger.info("Deleted student %s", student_id)
    return {"success": True, "message": f"{student.name} has been removed."}


@app.post("/students/{student_id}/fees-paid", response_model=StudentWithRisk)
def fees_paid(student_id: str, store: RecordStore = Depends(get_store)):
    """Mark a student's fees as paid."""
    with store_lock:
        student = mark_fees_paid(_get_or_404(store, student_id), utc_now())
        store.update(student)
    return _with_risk(student, store.get_config())


@app.get("/students/{student_id}/latest", response_model=WeeklySnapshot)
def latest(student_id: str, store: RecordStore = Depends(get_store)):
    """Most recent snapshot, used to prefill this week's entry from last week's."""
    return latest_snapshot(_get_or_404(store, student_id))


@app.get("/students/{student_id}/message-draft", response_model=MessageDraftResponse)
def message_draft(student_id: str, store: RecordStore = Depends(get_store)):
    """Draft an SMS and call script for the student's guardian."""
    student = _get_or_404(store, student_id)
    assessment = assess(student, store.get_config())
    draft = generate_message_draft(student, assessment)
    return MessageDraftResponse(risk=assessment, **draft)


@app.get("/stats", response_model=StudentStats)
def stats(store: RecordStore = Depends(get_store)):
    return compute_stats(store.get_all(), store.get_config())


@app.get("/config", response_model=ConfigResponse)
def get_config(store: RecordStore = Depends(get_store)):
    risk_config = store.get_config()
    return ConfigResponse(config=risk_config, warnings=validate_config(risk_config))


@app.put("/config", response_model=ConfigResponse)
def put_config(risk_config: RiskConfig, store: RecordStore = Depends(get_store)):
    """Replace the risk configuration. Odd thresholds are saved as given and reported."""
    warnings = validate_config(risk_config)
    with store_lock:
        store.save_config(risk_config)
    return ConfigResponse(config=risk_config, warnings=warnings)


def _merge_import(store: RecordStore, result: ImportResult, allow_partial: bool, now) -> Tuple[int, int]:
    """Merge parsed records into the roster. Returns (merged count, roster size)."""
    merged_count = 0
    with store_lock:
        if result.success or (allow_partial and result.students):
            merged = merge_students(store.get_all(), result.students, now=now)
            store.save_all(merged)
            merged_count = result.students_imported
        total = len(store.get_all())
    return merged_count, total


@app.post("/import", response_model=UploadResponse)
async def import_csv(
    file: UploadFile = File(...),
    allow_partial: bool = False,
    store: RecordStore = Depends(get_store)
):
    """
    Import students from a CSV file.

    Records are merged into the roster only when every row is valid, unless
    allow_partial is set, in which case the valid rows are merged anyway.
    `students_imported` counts the valid rows parsed; `merged` counts the
    ones actually saved, which is 0 for a failed file without allow_partial.
    """
    file_bytes = await file.read()
    if len(file_bytes) > config.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {config.MAX_UPLOAD_SIZE_MB}MB"
        )

    if not (file.filename or '').lower().endswith('.csv'):
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Please upload a CSV file (.csv)"
        )

    now = utc_now()
    result = parse_upload(file_bytes, now=now)

    # Waiting on store_lock must not block the event loop
    merged_count, total = await run_in_threadpool(_merge_import, store, result, allow_partial, now)

    if result.success:
        message = f"{result.students_imported} students imported successfully."
    elif merged_count:
        message = f"{merged_count} students imported, {len(result.errors)} errors."
    else:
        message = f"Import failed with {len(result.errors)} errors. Nothing was saved."

    logger.info(
        "Import of %s: success=%s imported=%d merged=%d errors=%d",
        file.filename, result.success, result.students_imported, merged_count, len(result.errors)
    )

    return UploadResponse(
        success=result.success,
        message=message,
        students_imported=result.students_imported,
        merged=merged_count,
        errors=result.errors,
        total_students=total
    )


@app.get("/export")
def export_snapshot(store: RecordStore = Depends(get_store)):
    """Download all records and the config as JSON."""
    return PlainTextResponse(
        content=store.export_snapshot(),
        media_type="application/json",
        headers={
            "Content-Disposition": f"attachment; filename=student_risk_backup_{utc_now().date().isoformat()}.json"
        }
    )


def _restore(store: RecordStore, text: str) -> SnapshotImportResult:
    with store_lock:
        return store.import_snapshot(text)


@app.post("/restore", response_model=SnapshotImportResult)
async def restore_snapshot(request: Request, store: RecordStore = Depends(get_store)):
    """Replace records and config from an exported snapshot."""
    body = await request.body()
    result = await run_in_threadpool(_restore, store, body.decode('utf-8', errors='replace'))
    if not result.success:
        logger.warning("Snapshot restore failed: %s", result.error)
    return result


@app.post("/sample-data", response_model=SampleDataResponse)
def load_sample_data(store: RecordStore = Depends(get_store)):
    """Replace the roster with the demo students."""
    students = sample_students()
    with store_lock:
        store.save_all(students)
    summary = compute_stats(students, store.get_config())
    return SampleDataResponse(
        success=True,
        message=f"{len(students)} sample students have been added to get you started.",
        summary=summary.model_dump()
    )


@app.get("/template.csv")
def template_csv():
    """Empty CSV with just the required header row."""
    return PlainTextResponse(
        content=CSV_TEMPLATE,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=student_import_template.csv"}
    )


@app.get("/sample.csv")
def sample_csv():
    """Sample CSV with five example students."""
    return PlainTextResponse(
        content=SAMPLE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=student_import_sample.csv"}
    )


def _scored_roster(store: RecordStore):
    df = score_frame(roster_frame(store.get_all()), store.get_config())
    df['risk_score'] = df['risk_score'].round(2)
    return df.sort_values(['risk_score', 'name'], ascending=[False, True])


@app.get("/download.csv")
def download_csv(store: RecordStore = Depends(get_store)):
    """Download the roster with risk scores as CSV."""
    output = StringIO()
    _scored_roster(store).to_csv(output, index=False)
    output.seek(0)

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=student_risk_{utc_now().date().isoformat()}.csv"
        }
    )


@app.get("/download.xlsx")
def download_xlsx(store: RecordStore = Depends(get_store)):
    """Download the roster with risk scores as an Excel workbook."""
    output = BytesIO()
    _scored_roster(store).to_excel(output, index=False, sheet_name="Students", engine="openpyxl")
    output.seek(0)

    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename=student_risk_{utc_now().date().isoformat()}.xlsx"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
