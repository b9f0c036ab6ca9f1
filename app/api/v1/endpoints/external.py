import logging

from fastapi import APIRouter, Depends

from app.core.errors import CredentialRefreshFailed, ExternalFetchFailed, TransportFailure, UpstreamRejected
from app.schemas.external import ExternalDataOut
from app.services.external import ExternalApiService, get_external_service


log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/external-a", response_model=ExternalDataOut)
async def get_external_data(service: ExternalApiService = Depends(get_external_service)) -> ExternalDataOut:
    try:
        data = await service.fetch_data()
    except (TransportFailure, UpstreamRejected, CredentialRefreshFailed) as e:
        # callers get one message whatever failed upstream
        log.warning("external API call failed: %s (%s)", e, type(e).__name__)
        raise ExternalFetchFailed() from e
    return ExternalDataOut(data=data)
