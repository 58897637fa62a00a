"""
Generation Routes: Social Content Generation and Usage

- POST /api/generate         one generation (admission-gated)
- POST /api/generate/more    more variations of existing content
- GET  /api/usage            caller's usage counters
- GET  /api/user/content     signed-in caller's generated content
- GET  /api/user/content/ID  one of those items
- POST /api/generate-image   standalone image for a piece of text

Responses use camelCase field names. Denials surface as 429 through the
AdmissionDeniedError handler in api.exceptions.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.dependencies import (
    get_content_repository,
    get_image_augmenter,
    get_orchestrator,
    get_usage_gate,
)
from api.schemas import (
    ContentHistoryResponse,
    ErrorResponse,
    ImageRequest,
    ImageResponse,
    VariationsRequest,
    VariationsResponse,
)
from core.models import (
    CallerIdentity,
    DeniedResponse,
    GenerationRequest,
    GenerationResult,
    PersistedContent,
    UsageSummary,
)
from execution.media_augmenter import ImageAugmenter
from infrastructure.monitoring import get_logger
from knowledge.content_repository import ContentRepository
from orchestration.generation_orchestrator import GenerationOrchestrator
from orchestration.usage_gate import UsageGate
from security import get_authenticated_caller, get_caller

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post(
    "/generate",
    response_model=GenerationResult,
    response_model_by_alias=True,
    summary="Generate social media content",
    responses={
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": DeniedResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
async def generate_content(
    request: GenerationRequest,
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    """
    Generate a post, its variations and optional media for one platform.

    Provider failures never surface here: the response is then deterministic
    fallback content with `source` set to "fallback".
    """
    logger.info(
        "generation_requested",
        subject=caller.subject_id,
        platform=request.platform.value,
        content_type=request.content_type.value,
        language_model=request.options.language_model.value,
    )
    return await orchestrator.generate(request, caller)


@router.post(
    "/generate/more",
    response_model=VariationsResponse,
    response_model_by_alias=True,
    summary="Generate more variations",
)
async def generate_more_variations(
    request: VariationsRequest,
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> VariationsResponse:
    """Additional variations of content the caller already generated."""
    variations = await orchestrator.generate_more_variations(
        request.platform,
        request.content_type,
        request.base_content,
        request.options,
        caller,
    )
    return VariationsResponse(variations=variations)


@router.get(
    "/usage",
    response_model=UsageSummary,
    response_model_by_alias=True,
    summary="Current usage and limit",
)
async def get_usage(
    caller: CallerIdentity = Depends(get_caller),
    usage_gate: UsageGate = Depends(get_usage_gate),
) -> UsageSummary:
    return await usage_gate.summary(caller)


@router.get(
    "/user/content",
    response_model=ContentHistoryResponse,
    response_model_by_alias=True,
    summary="Content history of the signed-in caller",
)
async def list_user_content(
    limit: int = Query(50, ge=1, le=100),
    caller: CallerIdentity = Depends(get_authenticated_caller),
    repository: ContentRepository = Depends(get_content_repository),
) -> ContentHistoryResponse:
    items = await repository.list_for_user(caller.user_id, limit=limit)
    return ContentHistoryResponse(items=items, count=len(items))


@router.get(
    "/user/content/{content_id}",
    response_model=PersistedContent,
    response_model_by_alias=True,
    summary="One generated item of the signed-in caller",
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def get_user_content(
    content_id: str,
    caller: CallerIdentity = Depends(get_authenticated_caller),
    repository: ContentRepository = Depends(get_content_repository),
) -> PersistedContent:
    content = await repository.get_content(content_id)
    # Other users' rows are reported as missing.
    if content is None or content.user_id != caller.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return content


@router.post(
    "/generate-image",
    response_model=ImageResponse,
    response_model_by_alias=True,
    summary="Generate a standalone image",
    responses={status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse}},
)
async def generate_image(
    request: ImageRequest,
    caller: CallerIdentity = Depends(get_caller),
    augmenter: ImageAugmenter = Depends(get_image_augmenter),
) -> ImageResponse:
    """
    Illustrate caller-supplied text for a platform.

    Not admission-gated: only text generations count against the quota.
    Provider failures surface as 502 through the MediaError handler.
    """
    logger.info("image_requested", subject=caller.subject_id, platform=request.platform.value)
    url = await augmenter.augment(request.prompt, request.platform, request.content_style)
    return ImageResponse(image_url=url)
