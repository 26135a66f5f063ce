"""
Department API endpoints.

CRUD over departments plus status toggling. A department that still has
users cannot be deleted.
"""

from typing import Annotated
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from vems.app.db.session import get_db
from vems.app.models.department import Department
from vems.app.models.user import User
from vems.app.models.enums import UserType, UserStatus, DRIVER_USER_TYPES
from vems.app.schemas.common import SelectOption
from vems.app.schemas.department import (
    DepartmentCreate, DepartmentUpdate, DepartmentIndexQuery, DepartmentResponse,
    DepartmentListItem, DepartmentListResponse, DepartmentDetailResponse, DepartmentStats,
    DepartmentMember, DepartmentFormOptions, PersonRef,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError, ResourceInUseError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count

router = APIRouter(prefix="/departments", tags=["Departments"])

SORT_COLUMNS = {
    "name": Department.name,
    "code": Department.code,
    "location": Department.location,
    "is_active": Department.is_active,
    "status": Department.is_active,
    "created_at": Department.created_at,
}

NOT_NULL_FIELDS = {"name", "code", "is_active"}


async def get_department_or_404(db: AsyncSession, department_id: int) -> Department:
    result = await db.execute(select(Department).where(Department.id == department_id))
    department = result.scalar_one_or_none()
    if not department:
        raise ResourceNotFoundError("Department", department_id)
    return department


async def _validate_department(db: AsyncSession, data: dict, department_id: int = None) -> None:
    errors = {}
    for field in ("name", "code"):
        if data.get(field) is None:
            continue
        query = select(Department.id).where(getattr(Department, field) == data[field])
        if department_id:
            query = query.where(Department.id != department_id)
        if (await db.execute(query)).first():
            errors[field] = f"The {field} has already been taken."
    if data.get("head_id") is not None:
        head = await db.execute(select(User.id).where(User.id == data["head_id"]))
        if not head.first():
            errors["head_id"] = "The selected head does not exist."
    if errors:
        raise ValidationFailedError(errors)


async def _person_ref(db: AsyncSession, user_id):
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return PersonRef(id=user.id, name=user.name, email=user.email) if user else None


@router.get("", response_model=DepartmentListResponse)
async def list_departments(
    params: Annotated[DepartmentIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-departments")),
    db: AsyncSession = Depends(get_db)
):
    """
    List departments with search, status filter and sorting.

    Each row carries its user count and head summary.
    """
    users_count = (
        select(func.count(User.id)).where(User.department_id == Department.id).correlate(Department).scalar_subquery()
    )
    query = select(Department, users_count.label("users_count"))

    if params.search:
        query = query.where(search_clause(params.search, [
            Department.name, Department.code, Department.description, Department.location,
        ]))
    if params.status:
        query = query.where(Department.is_active.is_(params.status == "active"))

    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    departments = []
    for department, users in rows:
        item = DepartmentListItem.model_validate(department)
        item.users_count = users or 0
        item.head = await _person_ref(db, department.head_id)
        departments.append(item)

    return DepartmentListResponse(departments=departments, meta=meta)


@router.get("/form-options", response_model=DepartmentFormOptions)
async def department_form_options(
    current_user: dict = Depends(require_permission("view-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Active users that can be picked as department head."""
    result = await db.execute(
        select(User).where(User.status == UserStatus.ACTIVE).order_by(User.name)
    )
    return DepartmentFormOptions(
        users=[SelectOption(label=user.name, value=user.id) for user in result.scalars().all()]
    )


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department_data: DepartmentCreate,
    current_user: dict = Depends(require_permission("create-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Create a department."""
    data = department_data.model_dump()
    await _validate_department(db, data)

    department = Department(**data)
    db.add(department)
    await db.commit()
    await db.refresh(department)

    await log_event(
        db=db,
        action=AuditAction.DEPARTMENT_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="department",
        target_id=department.id,
        target_label=department.code,
    )
    return DepartmentResponse.model_validate(department)


@router.get("/{department_id}", response_model=DepartmentDetailResponse)
async def get_department(
    department_id: int = Path(..., description="Department ID"),
    current_user: dict = Depends(require_permission("view-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Department with its members and member statistics."""
    department = await get_department_or_404(db, department_id)

    result = await db.execute(
        select(User).where(User.department_id == department.id).order_by(User.name)
    )
    users = result.scalars().all()

    stats = DepartmentStats(
        total_users=len(users),
        active_users=sum(1 for user in users if user.status == UserStatus.ACTIVE),
        drivers=sum(1 for user in users if user.user_type in DRIVER_USER_TYPES),
        managers=sum(1 for user in users if user.user_type == UserType.TRANSPORT_MANAGER),
    )

    detail = DepartmentDetailResponse.model_validate({
        **DepartmentResponse.model_validate(department).model_dump(),
        "head": await _person_ref(db, department.head_id),
        "users": [
            DepartmentMember(
                id=user.id, name=user.name, email=user.email,
                user_type=user.user_type.value, status=user.status.value,
            )
            for user in users
        ],
        "stats": stats,
    })
    return detail


@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_data: DepartmentUpdate,
    department_id: int = Path(..., description="Department ID"),
    current_user: dict = Depends(require_permission("edit-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Update department fields (only the submitted ones)."""
    department = await get_department_or_404(db, department_id)

    update_data = department_data.model_dump(exclude_unset=True)
    await _validate_department(db, update_data, department_id=department.id)

    for field, value in update_data.items():
        if value is None and field in NOT_NULL_FIELDS:
            continue
        setattr(department, field, value)

    await db.commit()
    await db.refresh(department)

    await log_event(
        db=db,
        action=AuditAction.DEPARTMENT_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="department",
        target_id=department.id,
        target_label=department.code,
        metadata={"updated_fields": list(update_data.keys())}
    )
    return DepartmentResponse.model_validate(department)


@router.patch("/{department_id}/toggle-status", response_model=DepartmentResponse)
async def toggle_department_status(
    department_id: int = Path(..., description="Department ID"),
    current_user: dict = Depends(require_permission("edit-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Flip a department between active and inactive."""
    department = await get_department_or_404(db, department_id)
    department.is_active = not department.is_active
    await db.commit()
    await db.refresh(department)

    await log_event(
        db=db,
        action=AuditAction.DEPARTMENT_STATUS_TOGGLED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="department",
        target_id=department.id,
        target_label=department.code,
        metadata={"is_active": department.is_active}
    )
    return DepartmentResponse.model_validate(department)


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_department(
    department_id: int = Path(..., description="Department ID"),
    current_user: dict = Depends(require_permission("delete-departments")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a department that has no users."""
    department = await get_department_or_404(db, department_id)

    members = await count(db, User.id, User.department_id == department.id)
    if members:
        raise ResourceInUseError(
            "Cannot delete department with existing users.",
            details={"users_count": members}
        )

    code = department.code
    await db.delete(department)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.DEPARTMENT_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="department",
        target_id=department_id,
        target_label=code,
    )
