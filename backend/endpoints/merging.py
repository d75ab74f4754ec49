from fastapi import HTTPException
from pydantic import BaseModel

from minimerge import fill_blank_fields, merge_records
from minimerge.session import Session


class MergeRequest(BaseModel):
    primary_id: int
    secondary_id: int
    destroy_merged_record: bool = True
    fill_blank_fields: bool = True


def run_merge(session: Session, model, request: MergeRequest):
    """Merge two rows of `model` by id, answering 404 / 409 instead of a MergeResult error."""
    primary = session.get(model, request.primary_id)
    secondary = session.get(model, request.secondary_id)
    if not primary or not secondary:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")

    result = merge_records(
        session, primary, secondary,
        merge_logic=fill_blank_fields() if request.fill_blank_fields else None,
        destroy_merged_record=request.destroy_merged_record,
    )
    if not result:
        raise HTTPException(status_code=409, detail=result.message)
    session.commit()
    return {
        "primary_id": request.primary_id,
        "secondary_id": request.secondary_id,
        "update_counts": result.update_counts,
    }
