from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.ai_rate_limit import RateLimitDecision, get_rate_limiter
from app.core.errors import PipelineError, RateLimited
from app.core.security import Identity, require_user
from app.schemas.portfolio import (
    AnalysisResult,
    ExperienceBullets,
    ExperienceBulletsRequest,
    GenerateFromResumeRequest,
    GeneratedPortfolioDraft,
    GeneratedSummary,
    GenerateSummaryRequest,
    ImprovedText,
    ImproveTextRequest,
    JobOptimizationResult,
    OptimizeForJobRequest,
    RewritePortfolioRequest,
    RewriteResult,
    SuggestedTags,
    SuggestTagsRequest,
    TemplateThemeRecommendation,
)
from app.services.portfolio_ai_service import PortfolioAIService, get_portfolio_ai_service

router = APIRouter(prefix="/ai")

AI_ROUTE_CLASS = "ai"


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after_header())
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(item) for item in first.get("loc", ()) if item != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "message": f"{location}: {message}" if location else message},
    )


def _apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(decision.reset_at))


def _enforce_ai_rate_limit(identity: Identity, response: Response) -> None:
    limiter = get_rate_limiter()
    key = limiter.identity_for(AI_ROUTE_CLASS, user_id=identity.user_id, client_ip=identity.client_ip)
    decision = limiter.enforce(key, AI_ROUTE_CLASS)
    _apply_rate_limit_headers(response, decision)


@router.post("/analyze-portfolio", response_model=AnalysisResult)
async def analyze_portfolio(
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.analyze(identity.user_id)


@router.post("/recommend-template-theme", response_model=TemplateThemeRecommendation)
async def recommend_template_theme(
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.recommend_template_theme(identity.user_id)


@router.post("/rewrite-portfolio", response_model=RewriteResult)
async def rewrite_portfolio(
    payload: RewritePortfolioRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.rewrite_portfolio(identity.user_id, payload.tone)


@router.post("/optimize-portfolio-for-job", response_model=JobOptimizationResult)
async def optimize_portfolio_for_job(
    payload: OptimizeForJobRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.optimize_for_job(identity.user_id, payload.job_description)


@router.post("/generate-portfolio-from-resume", response_model=GeneratedPortfolioDraft)
async def generate_portfolio_from_resume(
    payload: GenerateFromResumeRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.generate_from_resume(identity.user_id, payload.resume_text)


@router.post("/improve-text", response_model=ImprovedText)
async def improve_text(
    payload: ImproveTextRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.improve_text(payload.text, payload.tone)


@router.post("/generate-summary", response_model=GeneratedSummary)
async def generate_summary(
    response: Response,
    payload: GenerateSummaryRequest | None = None,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    max_words = payload.max_words if payload else None
    return await service.generate_summary(identity.user_id, max_words)


@router.post("/suggest-tags", response_model=SuggestedTags)
async def suggest_tags(
    payload: SuggestTagsRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.suggest_tags(payload.text, payload.max_tags)


@router.post("/generate-experience-bullets", response_model=ExperienceBullets)
async def generate_experience_bullets(
    payload: ExperienceBulletsRequest,
    response: Response,
    identity: Identity = Depends(require_user),
    service: PortfolioAIService = Depends(get_portfolio_ai_service),
):
    _enforce_ai_rate_limit(identity, response)
    return await service.generate_experience_bullets(payload.description, payload.count)
