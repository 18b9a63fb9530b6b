from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...api.deps import get_admin_user, get_current_user
from ...services.clinic_branch_service import ClinicBranchService
from ...schemas.clinic_branch import ClinicBranchCreate, ClinicBranchUpdate, ClinicBranchResponse
from ...schemas.common import ApiResponse

router = APIRouter(
    prefix="/clinic-branches",
    tags=["Clinic Branches"],
    dependencies=[Depends(get_current_user)]
)

@router.post(
    "",
    response_model=ApiResponse[ClinicBranchResponse],
    status_code=201,
    dependencies=[Depends(get_admin_user)]
)
async def create_branch(data: ClinicBranchCreate, db: Session = Depends(get_db)):
    branch = ClinicBranchService(db).create_branch(data)
    return ApiResponse(
        data=ClinicBranchResponse.model_validate(branch),
        message="Clinic branch created successfully"
    )

@router.get("", response_model=ApiResponse[List[ClinicBranchResponse]])
async def list_branches(db: Session = Depends(get_db)):
    branches = ClinicBranchService(db).list_branches()
    return ApiResponse(data=[ClinicBranchResponse.model_validate(b) for b in branches])

@router.get("/{branch_id}", response_model=ApiResponse[ClinicBranchResponse])
async def get_branch(branch_id: int, db: Session = Depends(get_db)):
    branch = ClinicBranchService(db).get_branch(branch_id)
    return ApiResponse(data=ClinicBranchResponse.model_validate(branch))

@router.put(
    "/{branch_id}",
    response_model=ApiResponse[ClinicBranchResponse],
    dependencies=[Depends(get_admin_user)]
)
async def update_branch(branch_id: int, data: ClinicBranchUpdate, db: Session = Depends(get_db)):
    branch = ClinicBranchService(db).update_branch(branch_id, data)
    return ApiResponse(
        data=ClinicBranchResponse.model_validate(branch),
        message="Clinic branch updated successfully"
    )

@router.delete(
    "/{branch_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(get_admin_user)]
)
async def delete_branch(branch_id: int, db: Session = Depends(get_db)):
    ClinicBranchService(db).delete_branch(branch_id)
    return ApiResponse(message="Clinic branch deleted successfully")
