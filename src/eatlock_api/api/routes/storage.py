"""Upload handshake and direct upload routes."""

from fastapi import APIRouter, Request

from eatlock_api.api.dependencies import (
    ClientIpDep,
    CurrentUserDep,
    QuotaEngineDep,
    UploadServiceDep,
)
from eatlock_api.models.vision import SignedUploadRequest, SignedUploadResponse, UploadReceipt

router = APIRouter()


@router.post("/signed-upload", response_model=SignedUploadResponse)
async def create_signed_upload(
    body: SignedUploadRequest,
    request: Request,
    user_id: CurrentUserDep,
    ip: ClientIpDep,
    quota: QuotaEngineDep,
    service: UploadServiceDep,
):
    """
    Get a fresh storage key and a short-lived URL to PUT the photo to.

    - **kind**: `before` or `after` (labels the key only)

    Every call returns a new key, even for identical photos.
    """
    await quota.check_upload_rate(user_id, ip, "signed")
    return service.create_signed_upload(user_id, body.kind, str(request.base_url))


@router.put("/upload/{key:path}", response_model=UploadReceipt)
async def upload_image(
    key: str,
    request: Request,
    user_id: CurrentUserDep,
    ip: ClientIpDep,
    quota: QuotaEngineDep,
    service: UploadServiceDep,
    expires: int | None = None,
    sig: str | None = None,
):
    """
    Upload JPEG bytes to a key issued by `/storage/signed-upload`.

    Requires the `expires` and `sig` query parameters from the signed URL.
    Rejects keys not owned by the caller (403), non-JPEG bodies (415),
    bodies over the size cap (413) and empty bodies (400).
    """
    await quota.check_upload_rate(user_id, ip, "direct")
    return await service.store_upload(
        user_id,
        key,
        content_type=request.headers.get("content-type"),
        content_length=request.headers.get("content-length"),
        chunks=request.stream(),
        expires=expires,
        sig=sig,
    )
