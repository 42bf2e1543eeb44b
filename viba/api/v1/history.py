"""Generation history API: create, list (URLs resolved) and delete records."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from viba.api.v1.schemas import HistoryCreateRequest, HistoryRecordOut
from viba.auth.supabase_auth import CurrentUser, verify_jwt

router = APIRouter()

# Set by main.py during lifespan
_recorder = None


def set_recorder(recorder):
    global _recorder
    _recorder = recorder


def _require_recorder():
    if _recorder is None:
        raise HTTPException(status_code=503, detail="History not initialized")
    return _recorder


@router.post("/history", response_model=HistoryRecordOut, status_code=201)
async def create_history(request: HistoryCreateRequest, user: CurrentUser = Depends(verify_jwt)):
    """Store a generation submitted by the client (inline payloads are uploaded)."""
    recorder = _require_recorder()
    request.check_files(user.id)
    record = await recorder.create(
        user.id,
        request.type,
        input_files=request.input_files,
        output_files=request.output_files,
        parameters=request.parameters,
        status=request.status,
        error_message=request.error_message,
        generation_id=request.id,
    )
    return HistoryRecordOut.from_record(await recorder.resolve(record))


@router.get("/history", response_model=List[HistoryRecordOut])
async def list_history(user: CurrentUser = Depends(verify_jwt)):
    """Caller's records, newest first, with fresh artifact URLs."""
    records = await _require_recorder().list(user.id)
    return [HistoryRecordOut.from_record(r) for r in records]


@router.delete("/history/{generation_id}")
async def delete_history(generation_id: str, user: CurrentUser = Depends(verify_jwt)):
    await _require_recorder().delete(user.id, generation_id)
    return {"message": "Deleted successfully"}
