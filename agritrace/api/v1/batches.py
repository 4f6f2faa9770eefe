from typing import List, Optional
from fastapi import APIRouter, Depends, status

from agritrace.core.dependencies import get_current_user, get_batch_service
from agritrace.services.batch import BatchService
from agritrace.db.schema import User
from agritrace.models.batch import (
    BatchCreate, BatchRead, BatchTransfer, BatchAcceptFromFarmer,
    RetailerAccept, BatchStatusUpdate, BatchDetailsRead, PendingBatchRead
)

router = APIRouter()


@router.post(
    "/",
    response_model=BatchRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Batch",
    description="Registers a harvest batch and its QR trace URL. Farmers (or users without a role) only."
)
def create_batch(
    payload: BatchCreate,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.create_batch(user=current_user, data=payload)


@router.get(
    "/",
    response_model=List[BatchRead],
    summary="List My Batches",
    description="Batches the caller currently owns. Government users see every batch."
)
def get_user_batches(
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.get_user_batches(user=current_user)


@router.get(
    "/pending",
    response_model=List[PendingBatchRead],
    summary="Pending Retailer Batches",
    description="Batches transferred to the calling retailer that still await acceptance."
)
def get_pending_batches_for_retailer(
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.get_pending_batches_for_retailer(user=current_user)


@router.get(
    "/{batch_id}",
    response_model=Optional[BatchDetailsRead],
    summary="Trace Batch",
    description="Public lookup used by QR scans. Returns null when the batch is unknown.",
    tags=["Public"]
)
def get_batch_by_id(
    batch_id: str,
    service: BatchService = Depends(get_batch_service)
):
    return service.get_batch_by_id(batch_id)


@router.post(
    "/{batch_id}/transfer",
    response_model=BatchRead,
    summary="Transfer Batch",
    description=(
        "Owner hands the batch to a distributor (immediate) or a retailer "
        "(pending until the retailer accepts)."
    )
)
def transfer_batch(
    batch_id: str,
    payload: BatchTransfer,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.transfer_batch(user=current_user, batch_id=batch_id, data=payload)


@router.post(
    "/{batch_id}/accept-from-farmer",
    response_model=BatchRead,
    summary="Collect Batch From Farmer",
    description="A distributor takes ownership of a farmer-owned batch, recording logistics."
)
def accept_batch_from_farmer(
    batch_id: str,
    payload: BatchAcceptFromFarmer,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.accept_batch_from_farmer(user=current_user, batch_id=batch_id, data=payload)


@router.post(
    "/{batch_id}/retailer-accept",
    response_model=BatchRead,
    summary="Accept Batch As Retailer",
    description="The designated retailer confirms receipt and becomes the owner."
)
def retailer_accept_batch(
    batch_id: str,
    payload: RetailerAccept,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.retailer_accept_batch(user=current_user, batch_id=batch_id, data=payload)


@router.patch(
    "/{batch_id}/status",
    response_model=BatchRead,
    summary="Update Batch Status",
    description="Owner-only status edit, e.g. a retailer marking a batch as sold."
)
def update_batch_status(
    batch_id: str,
    payload: BatchStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.update_batch_status(user=current_user, batch_id=batch_id, data=payload)
