# sentinelmind/routes/scan.py
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
import logging
import time
from typing import Optional, List

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scan")


# Request/Response models
class URLScanRequest(BaseModel):
    url: str


class EmailScanRequest(BaseModel):
    text: str


class IndicatorModel(BaseModel):
    rule: str
    kind: str
    risk_level: str  # "low" | "medium" | "high"
    description: str


class ScanResponse(BaseModel):
    target: str
    input: str
    indicators: List[IndicatorModel]
    highest_risk: Optional[str] = None
    processing_time_ms: int


class TyposquatRequest(BaseModel):
    candidate: str
    reference_domains: Optional[List[str]] = None
    low_bound: Optional[float] = None
    high_bound: Optional[float] = None


class TyposquatMatchModel(BaseModel):
    reference_domain: str
    score: float


class TyposquatResponse(BaseModel):
    candidate: str
    matches: List[TyposquatMatchModel]


def _scan_response(result, start_time: float) -> ScanResponse:
    data = result.to_dict()
    data["processing_time_ms"] = int((time.time() - start_time) * 1000)
    return ScanResponse(**data)


@router.post("/url", response_model=ScanResponse)
async def scan_url(request: URLScanRequest, req: Request):
    """Run the URL heuristics. Malformed URLs come back as a single indicator, never an error."""
    start_time = time.time()
    reference_service = req.app.state.reference_service

    # Hot-reload reference lists if needed (for live updates)
    reference_service.hot_reload_if_needed()

    result = reference_service.scanner.scan_url(request.url)
    return _scan_response(result, start_time)


@router.post("/email", response_model=ScanResponse)
async def scan_email(request: EmailScanRequest, req: Request):
    """Run the email heuristics over the raw message text"""
    start_time = time.time()
    reference_service = req.app.state.reference_service
    reference_service.hot_reload_if_needed()

    result = reference_service.scanner.scan_email(request.text)
    return _scan_response(result, start_time)


@router.post("/typosquat", response_model=TyposquatResponse)
async def scan_typosquat(request: TyposquatRequest, req: Request):
    """Compare a candidate domain against legitimate domains (or a supplied list)"""
    reference_service = req.app.state.reference_service
    detector = req.app.state.typosquat_detector

    references = request.reference_domains
    if references is None:
        references = list(reference_service.lists.legitimate_domains)

    try:
        matches = detector.find_suspicious_matches(
            request.candidate,
            references,
            low_bound=request.low_bound,
            high_bound=request.high_bound,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TyposquatResponse(
        candidate=request.candidate,
        matches=[TyposquatMatchModel(**match.to_dict()) for match in matches],
    )


@router.get("/lists")
async def get_list_stats(req: Request):
    """Get statistics about loaded reference lists"""
    reference_service = req.app.state.reference_service
    return {
        "status": "healthy",
        "reference_lists": reference_service.get_stats(),
    }


@router.post("/lists/reload")
async def reload_lists(req: Request):
    """Manually trigger a reload of the reference lists"""
    reference_service = req.app.state.reference_service
    if not reference_service.load_all_data():
        raise HTTPException(status_code=500, detail="Failed to reload reference lists")

    return {
        "status": "success",
        "message": "Reference lists reloaded successfully",
        "stats": reference_service.get_stats(),
    }
