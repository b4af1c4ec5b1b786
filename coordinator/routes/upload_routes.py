"""Upload request API route."""

import anyio
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from common.constants import UPLOAD_REQUEST_PATH
from common.protocol import FileMetadata, UploadStatus
from coordinator.services.upload_service import UploadCoordinator

router = APIRouter(tags=["Uploads"])


def get_coordinator(request: Request) -> UploadCoordinator:
    return request.app.state.coordinator


@router.post(UPLOAD_REQUEST_PATH)
async def upload_request(
    meta: FileMetadata,
    coordinator: UploadCoordinator = Depends(get_coordinator)
):
    """
    Ask for permission to upload one file.

    Parameters:
        - JSON body: id, name, mtime, size, content_type, test_upload
        - Authorization header: Basic <credentials> (required)

    Returns:
        - 200 {"status": "ok", "url", "method", "headers"}: upload with this capability
        - 409 {"status": "skip"}: object already stored under the derived key

    Raises:
        - 400: Malformed metadata
        - 401: Invalid or missing credentials
        - 405: Method other than POST
        - 500: Object store failure
    """
    decision = await anyio.to_thread.run_sync(coordinator.request_upload, meta)

    if decision.status == UploadStatus.SKIP:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=decision.to_wire())

    return JSONResponse(status_code=status.HTTP_200_OK, content=decision.to_wire())
