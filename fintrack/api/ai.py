from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from fintrack.core.ai_runtime import get_ai_config_public
from fintrack.core.auth import SessionUser, get_current_user
from fintrack.core.errors import InsufficientRowsError, ValidationError
from fintrack.db.session import get_db
from fintrack.schemas.ai import AnalysisResponse, ChatRequest, ChatResponse
from fintrack.schemas.statement import ClassificationResult, ClassifyRequest, LayoutResult, ParseStatementRequest
from fintrack.services.advisor import chat_with_advisor
from fintrack.services.analysis import analyze_finances
from fintrack.services.classifier import classify_transactions
from fintrack.services.layout_detector import detect_layout
from fintrack.services.spreadsheet import read_grid

router = APIRouter(prefix="/ai", tags=["ai"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@router.get("/config")
def ai_config() -> dict:
    return get_ai_config_public()


@router.post("/parse-bank-statement", response_model=LayoutResult)
async def parse_bank_statement(
    payload: ParseStatementRequest,
    _: SessionUser = Depends(get_current_user),
) -> LayoutResult:
    if len(payload.data) < 2:
        raise InsufficientRowsError()
    return await detect_layout(payload.data)


@router.post("/upload-bank-statement", response_model=LayoutResult)
async def upload_bank_statement(
    file: UploadFile = File(...),
    _: SessionUser = Depends(get_current_user),
) -> LayoutResult:
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError("File is too large (max 10 MB)")
    grid = read_grid(content, file.filename)
    return await detect_layout(grid)


@router.post("/classify-transactions", response_model=ClassificationResult)
async def classify(
    payload: ClassifyRequest,
    _: SessionUser = Depends(get_current_user),
) -> ClassificationResult:
    return await classify_transactions(payload.transactions)


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> AnalysisResponse:
    return await analyze_finances(db, current.id)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> ChatResponse:
    return await chat_with_advisor(db, current.id, payload.message)
