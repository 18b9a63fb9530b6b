from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import List

from ..core.exceptions import NotFoundError
from ..models.clinic_branch import ClinicBranch
from ..schemas.clinic_branch import ClinicBranchCreate, ClinicBranchUpdate

class ClinicBranchService:
    def __init__(self, db: Session):
        self.db = db

    def create_branch(self, data: ClinicBranchCreate) -> ClinicBranch:
        branch = ClinicBranch(**data.model_dump())
        self.db.add(branch)
        self.db.commit()
        self.db.refresh(branch)
        return branch

    def get_branch(self, branch_id: int) -> ClinicBranch:
        branch = self.db.get(ClinicBranch, branch_id)
        if not branch:
            raise NotFoundError("Clinic branch not found", f"No clinic branch with id {branch_id}")
        return branch

    def list_branches(self) -> List[ClinicBranch]:
        return self.db.query(ClinicBranch).order_by(ClinicBranch.name).all()

    def update_branch(self, branch_id: int, data: ClinicBranchUpdate) -> ClinicBranch:
        branch = self.get_branch(branch_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(branch, field, value)
        self.db.commit()
        self.db.refresh(branch)
        return branch

    def delete_branch(self, branch_id: int) -> None:
        branch = self.get_branch(branch_id)
        self.db.delete(branch)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Clinic branch is still referenced by schedules or appointments"
            )
