"""Content generation endpoint — produce output ready to sign and submit."""

from fastapi import APIRouter, Depends, HTTPException

from provenance.dependencies import get_generation_service
from provenance.logging_config import get_logger
from provenance.schemas.generation import GenerationRequest, GenerationResult
from provenance.services.generation_service import GenerationService

logger = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=GenerationResult)
def generate_content(
    request: GenerationRequest,
    service: GenerationService = Depends(get_generation_service),
) -> GenerationResult:
    """Generate content with Claude.

    The response carries ``output_hash`` and ``message_to_sign``; sign the
    message with the submitter's wallet and pass both to
    ``POST /verifications``.

    Raises:
        HTTPException: 400 for an unsupported model, 502 if generation fails.
    """
    logger.info("generation_requested", submitter=request.submitter_identity, model=request.model)

    try:
        result = service.generate(request)
    except ValueError as e:
        logger.warning("generation_rejected", error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("generation_failed", error=str(e), exc_info=True)
        raise HTTPException(status_code=502, detail=f"Content generation failed: {str(e)}")

    logger.info("generation_completed", model=result.model, output_hash=result.output_hash)
    return result
