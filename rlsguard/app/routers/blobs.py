"""Blob storage routes. Keys are ``<patient code>/<name>``."""
from fastapi import APIRouter, Depends, Header, Query, Response, status

from ..deps import blob_service, current_context, raw_body
from ..domain.policy import PolicyContext
from ..domain.schemas import BlobListOut, BlobUploadOut
from ..services.blobs import BlobService

router = APIRouter()


@router.get("", response_model=BlobListOut)
def list_blobs(
    prefix: str = Query(""),
    context: PolicyContext = Depends(current_context),
    blobs: BlobService = Depends(blob_service),
):
    return BlobListOut(prefix=prefix, keys=blobs.list_keys(context, prefix))


@router.put("/{key:path}", response_model=BlobUploadOut, status_code=status.HTTP_201_CREATED)
def upload_blob(
    key: str,
    data: bytes = Depends(raw_body),
    content_type: str = Header("application/octet-stream"),
    context: PolicyContext = Depends(current_context),
    blobs: BlobService = Depends(blob_service),
):
    return blobs.upload(context, key, data, content_type)


@router.get("/{key:path}")
def download_blob(
    key: str,
    context: PolicyContext = Depends(current_context),
    blobs: BlobService = Depends(blob_service),
):
    blob, data = blobs.download(context, key)
    return Response(
        content=data,
        media_type=blob.content_type,
        headers={"X-Content-SHA256": blob.sha256},
    )


@router.delete("/{key:path}", status_code=status.HTTP_204_NO_CONTENT)
def delete_blob(
    key: str,
    context: PolicyContext = Depends(current_context),
    blobs: BlobService = Depends(blob_service),
):
    blobs.delete(context, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
