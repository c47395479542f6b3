"""
FastAPI Backend for the Socratic Science Tutor

Provides REST API endpoints for:
- Tutoring sessions (setup, topic discovery, turns, summary, report)
- Curriculum administration (CRUD, import/export, PDF OCR)
- Stored session assessments

One SessionController is kept per session id for the lifetime of the process.
"""

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
import os
import sys
import time
import logging

from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.main")

# Add the socratic_science_tutor package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'socratic_science_tutor', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.supabase_client import get_optional_supabase_client

from socratic_science_tutor.ai_gateway import AIGateway, create_gateway
from socratic_science_tutor.assessment_store import AssessmentStore
from socratic_science_tutor.curriculum import (
    CurriculumFetcher,
    CurriculumStore,
    JsonCurriculumStore,
    SupabaseCurriculumStore,
)
from socratic_science_tutor.curriculum_admin import CurriculumAdmin, CurriculumItemNotFoundError
from socratic_science_tutor.errors import (
    CredentialError,
    ParseError,
    SessionError,
    TopicNotFoundError,
    TransportError,
    TutorError,
)
from socratic_science_tutor.ocr import PdfTextExtractor
from socratic_science_tutor.report import report_filename
from socratic_science_tutor.session_controller import SessionController
from socratic_science_tutor.topics import SCIENCE_TOPICS

OPENING_FAILURE_MESSAGE = "Sorry, I had trouble starting our session. Please check your API key and try again."

# ==================== Singletons ====================

_gateway: Optional[AIGateway] = None
_curriculum_store: Optional[CurriculumStore] = None
_assessment_store: Optional[AssessmentStore] = None
_curriculum_admin: Optional[CurriculumAdmin] = None
_controllers: Dict[str, SessionController] = {}


def get_gateway() -> AIGateway:
    """Get or create the AI gateway selected by AI_PROVIDER."""
    global _gateway
    if _gateway is None:
        _gateway = create_gateway()
    return _gateway


def get_curriculum_store() -> CurriculumStore:
    global _curriculum_store
    if _curriculum_store is None:
        supabase = get_optional_supabase_client()
        if supabase is not None:
            _curriculum_store = SupabaseCurriculumStore(supabase)
            logger.info("📚 Curriculum store: Supabase")
        else:
            _curriculum_store = JsonCurriculumStore()
            logger.info("📚 Curriculum store: JSON file", data={"path": str(_curriculum_store.path)})
    return _curriculum_store


def get_assessment_store() -> AssessmentStore:
    global _assessment_store
    if _assessment_store is None:
        _assessment_store = AssessmentStore(get_optional_supabase_client())
    return _assessment_store


async def get_curriculum_admin(
    gateway: AIGateway = Depends(get_gateway),
    store: CurriculumStore = Depends(get_curriculum_store)
) -> CurriculumAdmin:
    global _curriculum_admin
    if _curriculum_admin is None:
        _curriculum_admin = CurriculumAdmin(store, gateway)
        await _curriculum_admin.load()
    return _curriculum_admin


def get_pdf_extractor() -> PdfTextExtractor:
    return PdfTextExtractor()


def get_registry() -> Dict[str, SessionController]:
    return _controllers


def get_controller(
    session_id: str,
    registry: Dict[str, SessionController] = Depends(get_registry)
) -> SessionController:
    controller = registry.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return controller


# Initialize FastAPI app
app = FastAPI(
    title="Socratic Science Tutor API",
    description="REST API for adaptive Socratic science tutoring",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Error Mapping ====================

def status_for_error(error: Exception) -> int:
    if isinstance(error, CredentialError):
        return 401
    if isinstance(error, SessionError):
        return 409
    if isinstance(error, (TopicNotFoundError, ValueError)):
        return 400
    if isinstance(error, CurriculumItemNotFoundError):
        return 404
    if isinstance(error, (TransportError, ParseError)):
        return 502
    return 500


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
    status = status_for_error(exc)
    logger.warning(f"Request failed: {request.method} {request.url.path}", data={
        "status": status,
        "error": f"{type(exc).__name__}: {exc}",
    })
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "ValueError"})


@app.exception_handler(CurriculumItemNotFoundError)
async def item_not_found_handler(request: Request, exc: CurriculumItemNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "CurriculumItemNotFoundError"})


# ==================== Pydantic Models ====================

class CreateSessionRequest(BaseModel):
    student_name: str
    grade_level: int = 6


class DiscoverTopicsRequest(BaseModel):
    description: str


class StartSessionRequest(BaseModel):
    topic_key: Optional[str] = None
    subtopic_ids: Optional[List[str]] = None
    focus_areas: Optional[List[str]] = None


class AnswerRequest(BaseModel):
    text: str


class HintRequest(BaseModel):
    text: str = ""


class CurriculumItemRequest(BaseModel):
    title: str
    content: str
    topics: List[str] = []
    grades: List[int] = []
    content_type: str = "text"
    pdf_file_name: Optional[str] = None


class CurriculumImportRequest(BaseModel):
    items: List[Dict[str, Any]]
    version: Optional[int] = None
    lastUpdated: Optional[str] = None


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Socratic Science Tutor API",
        "version": "1.0.0",
        "active_sessions": len(_controllers),
    }


@app.get("/api/topics")
async def list_topics():
    return {
        "topics": [
            {
                "key": topic.key,
                "name": topic.display_name,
                "startingConcepts": topic.starting_concepts,
                "progressionPath": topic.progression_path,
            }
            for topic in SCIENCE_TOPICS.values()
        ]
    }


# ---------- Sessions ----------

@app.post("/api/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    gateway: AIGateway = Depends(get_gateway),
    curriculum_store: CurriculumStore = Depends(get_curriculum_store),
    assessment_store: AssessmentStore = Depends(get_assessment_store),
    registry: Dict[str, SessionController] = Depends(get_registry)
):
    """Register a student and open a session in the topic selection phase."""
    controller = SessionController(
        gateway,
        curriculum_fetcher=CurriculumFetcher(curriculum_store),
        assessment_store=assessment_store,
    )
    controller.begin(body.student_name, body.grade_level)
    registry[controller.session_id] = controller
    logger.success("Session created", data={
        "session_id": controller.session_id,
        "student": body.student_name,
        "grade": body.grade_level,
    })
    return controller.snapshot()


@app.post("/api/sessions/{session_id}/discover-topics")
async def discover_topics(body: DiscoverTopicsRequest, controller: SessionController = Depends(get_controller)):
    subtopics = await controller.discover_topics(body.description)
    return {"subtopics": [st.to_dict() for st in subtopics]}


@app.post("/api/sessions/{session_id}/start")
async def start_session(body: StartSessionRequest, controller: SessionController = Depends(get_controller)):
    """
    Start tutoring.

    Either pass `subtopic_ids` chosen from the discovered sub-topics, or a
    catalog `topic_key` directly.
    """
    start_time = time.time()
    logger.request("POST", "/api/sessions/{id}/start", session_id=controller.session_id, data=body.model_dump())

    focus_areas = body.focus_areas
    if body.subtopic_ids:
        by_id = {st.id: st for st in controller.suggested_subtopics}
        unknown = [i for i in body.subtopic_ids if i not in by_id]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown sub-topic ids: {', '.join(unknown)}")
        topic_key = controller.select_topics([by_id[i] for i in body.subtopic_ids])
        focus_areas = None
    elif body.topic_key:
        topic_key = body.topic_key
    else:
        raise HTTPException(status_code=400, detail="Provide topic_key or subtopic_ids")

    state = controller.state
    try:
        result = await controller.start_session(topic_key, state.grade_level, state.student_name, focus_areas)
    except TransportError as e:
        logger.error("Opening question failed", error=e)
        raise HTTPException(status_code=502, detail=OPENING_FAILURE_MESSAGE)

    logger.response(200, "/api/sessions/{id}/start", duration=time.time() - start_time)
    return {"turn": result.to_dict(), "session": controller.snapshot()}


@app.post("/api/sessions/{session_id}/answer")
async def submit_answer(body: AnswerRequest, controller: SessionController = Depends(get_controller)):
    start_time = time.time()
    logger.request("POST", "/api/sessions/{id}/answer", session_id=controller.session_id, data={
        "message_length": len(body.text),
    })
    result = await controller.submit_answer(body.text)
    logger.response(200, "/api/sessions/{id}/answer", duration=time.time() - start_time, data={
        "score": result.score,
        "difficulty": result.difficulty_level,
        "fallback": result.is_fallback,
    })
    return {"turn": result.to_dict(), "session": controller.snapshot()}


@app.post("/api/sessions/{session_id}/hint")
async def request_hint(body: Optional[HintRequest] = None, controller: SessionController = Depends(get_controller)):
    result = await controller.request_hint(body.text if body else "")
    return {"turn": result.to_dict(), "session": controller.snapshot()}


@app.post("/api/sessions/{session_id}/end")
async def end_session(controller: SessionController = Depends(get_controller)):
    logger.section("SESSION SUMMARY", {
        "session_id": controller.session_id,
        "questions": controller.state.question_count,
    })
    assessment = await controller.end_session()
    return {"assessment": assessment.to_dict(), "isFallback": assessment.is_fallback, "session": controller.snapshot()}


@app.get("/api/sessions/{session_id}/state")
async def get_session_state(controller: SessionController = Depends(get_controller)):
    return controller.snapshot()


@app.get("/api/sessions/{session_id}/report", response_class=PlainTextResponse)
async def get_session_report(controller: SessionController = Depends(get_controller)):
    report = controller.render_report()
    return PlainTextResponse(
        report,
        headers={"Content-Disposition": f'attachment; filename="{report_filename(controller.state)}"'},
    )


@app.delete("/api/sessions/{session_id}")
async def delete_session(
    session_id: str,
    registry: Dict[str, SessionController] = Depends(get_registry)
):
    if registry.pop(session_id, None) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "deleted", "session_id": session_id}


# ---------- Curriculum ----------

@app.get("/api/curriculum")
async def list_curriculum(
    include_inactive: bool = False,
    admin: CurriculumAdmin = Depends(get_curriculum_admin)
):
    return {
        "items": [item.to_dict() for item in admin.list_items(include_inactive)],
        "stats": admin.stats(),
    }


@app.post("/api/curriculum", status_code=201)
async def create_curriculum_item(body: CurriculumItemRequest, admin: CurriculumAdmin = Depends(get_curriculum_admin)):
    item = await admin.save_item(
        body.title, body.content, body.topics, body.grades, body.content_type, body.pdf_file_name
    )
    await admin.persist()
    return item.to_dict()


@app.put("/api/curriculum/{item_id}")
async def update_curriculum_item(
    item_id: str,
    body: CurriculumItemRequest,
    admin: CurriculumAdmin = Depends(get_curriculum_admin)
):
    admin.get_item(item_id)
    item = await admin.save_item(
        body.title, body.content, body.topics, body.grades, body.content_type, body.pdf_file_name,
        item_id=item_id,
    )
    await admin.persist()
    return item.to_dict()


@app.delete("/api/curriculum/{item_id}")
async def delete_curriculum_item(item_id: str, admin: CurriculumAdmin = Depends(get_curriculum_admin)):
    admin.delete_item(item_id)
    await admin.persist()
    return {"status": "deleted", "id": item_id}


@app.get("/api/curriculum/export")
async def export_curriculum(admin: CurriculumAdmin = Depends(get_curriculum_admin)):
    return JSONResponse(
        admin.export_json(),
        headers={"Content-Disposition": 'attachment; filename="curriculum.json"'},
    )


@app.post("/api/curriculum/import")
async def import_curriculum(body: CurriculumImportRequest, admin: CurriculumAdmin = Depends(get_curriculum_admin)):
    count = admin.import_json(body.model_dump())
    await admin.persist()
    return {"imported": count, "stats": admin.stats()}


@app.post("/api/curriculum/ocr")
async def extract_pdf_text(
    request: Request,
    filename: str = Query(..., description="Original PDF file name"),
    extractor: PdfTextExtractor = Depends(get_pdf_extractor)
):
    """Extract text from a PDF sent as the raw request body."""
    pdf_bytes = await request.body()
    logger.section("PDF OCR", {"filename": filename, "bytes": len(pdf_bytes)})
    text = await extractor.extract(pdf_bytes, filename)
    return {"filename": filename, "text": text, "characters": len(text)}


# ---------- Assessments ----------

@app.get("/api/assessments")
async def list_assessments(
    student_name: Optional[str] = None,
    store: AssessmentStore = Depends(get_assessment_store)
):
    return {"assessments": await store.list_assessments(student_name)}


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
