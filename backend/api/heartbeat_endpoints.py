"""
Heartbeat API Endpoints

Signed write endpoint used by the monitored appliance.
"""

from fastapi import APIRouter, Depends

from api.dependencies import error_response, get_ingest_service, require_signed_request
from models.heartbeat import ErrorResponse, HeartbeatPayload, HeartbeatRecordedResponse
from services.heartbeat_ingest import HeartbeatIngestService
from utils.logging import get_logger

logger = get_logger("heartbeat-api")
router = APIRouter(tags=["Heartbeat"])


@router.post(
    "/heartbeat",
    response_model=HeartbeatRecordedResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    dependencies=[Depends(require_signed_request)],
)
async def record_heartbeat(
    payload: HeartbeatPayload,
    ingest: HeartbeatIngestService = Depends(get_ingest_service),
):
    """
    Record a heartbeat.

    Closes the active downtime event when the reported connection state means
    the link is back.
    """
    try:
        payload.parsed_timestamp()
    except ValueError:
        return error_response(400, "Bad Request", "Invalid timestamp format")

    try:
        result = await ingest.record_heartbeat_and_reconcile(payload)
    except Exception as e:
        logger.error(f"Failed to record heartbeat: {e}", exc_info=True)
        return error_response(500, "Internal Server Error", "Failed to record heartbeat")

    logger.info(
        "Heartbeat recorded",
        extra={
            "data": {
                "heartbeat_id": result.heartbeat_id,
                "status": payload.connection_state,
                "closed_downtime_id": result.closed_event.id if result.closed_event else None,
            }
        }
    )
    return HeartbeatRecordedResponse(id=result.heartbeat_id)
