"""
User group API endpoints.

Groups are soft deleted; membership rows live in ``group_user``.
"""

from datetime import datetime, timezone
from typing import Annotated, List
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete, insert
from vems.app.db.session import get_db
from vems.app.models.user import User
from vems.app.models.user_group import UserGroup, group_user
from vems.app.models.enums import UserStatus
from vems.app.schemas.common import SelectOption
from vems.app.schemas.user_group import (
    UserGroupCreate, UserGroupUpdate, AddMembersRequest, UserGroupIndexQuery, UserGroupResponse,
    UserGroupListItem, UserGroupListResponse, UserGroupDetailResponse, GroupMember, AddMembersResponse,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate
from vems.app.services.permissions import find_missing_ids

router = APIRouter(prefix="/user-groups", tags=["User Groups"])

SORT_COLUMNS = {
    "id": UserGroup.id,
    "name": UserGroup.name,
    "status": UserGroup.status,
    "created_at": UserGroup.created_at,
}


def _members_count():
    return (
        select(func.count()).select_from(group_user)
        .where(group_user.c.user_group_id == UserGroup.id)
        .correlate(UserGroup).scalar_subquery()
    )


async def get_group_or_404(db: AsyncSession, group_id: int) -> UserGroup:
    result = await db.execute(
        select(UserGroup).where(UserGroup.id == group_id, UserGroup.deleted_at.is_(None))
    )
    group = result.scalar_one_or_none()
    if not group:
        raise ResourceNotFoundError("User group", group_id)
    return group


async def _validate_group(db: AsyncSession, data: dict, group_id: int = None) -> None:
    errors = {}
    if data.get("name") is not None:
        # Soft-deleted groups keep their name reserved
        query = select(UserGroup.id).where(UserGroup.name == data["name"])
        if group_id:
            query = query.where(UserGroup.id != group_id)
        if (await db.execute(query)).first():
            errors["name"] = "The name has already been taken."
    if data.get("member_ids"):
        missing = await find_missing_ids(db, User, data["member_ids"])
        if missing:
            errors["member_ids"] = f"Unknown user ids: {missing}"
    if errors:
        raise ValidationFailedError(errors)


async def _member_ids(db: AsyncSession, group_id: int) -> set:
    result = await db.execute(select(group_user.c.user_id).where(group_user.c.user_group_id == group_id))
    return set(result.scalars().all())


async def _add_members(db: AsyncSession, group_id: int, user_ids, added_by: int) -> int:
    """Insert memberships for users not yet in the group. Does not commit."""
    existing = await _member_ids(db, group_id)
    new_ids = sorted(set(user_ids) - existing)
    if new_ids:
        await db.execute(insert(group_user), [
            {"user_group_id": group_id, "user_id": user_id, "added_by": added_by}
            for user_id in new_ids
        ])
    return len(new_ids)


@router.get("", response_model=UserGroupListResponse)
async def list_groups(
    params: Annotated[UserGroupIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """List user groups with member counts."""
    query = select(UserGroup, _members_count().label("members_count")).where(UserGroup.deleted_at.is_(None))
    if params.search:
        query = query.where(search_clause(params.search, [UserGroup.name, UserGroup.description]))
    if params.status:
        query = query.where(UserGroup.status == params.status)
    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    groups = []
    for group, members_count in rows:
        item = UserGroupListItem.model_validate(group)
        item.members_count = members_count or 0
        groups.append(item)
    return UserGroupListResponse(groups=groups, meta=meta)


@router.post("", response_model=UserGroupDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: UserGroupCreate,
    current_user: dict = Depends(require_permission("create-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Create a group, optionally with initial members."""
    data = group_data.model_dump()
    await _validate_group(db, data)

    member_ids = data.pop("member_ids")
    group = UserGroup(**data, created_by=current_user["user_id"])
    db.add(group)
    await db.flush()
    await _add_members(db, group.id, member_ids, current_user["user_id"])
    await db.commit()
    await db.refresh(group)

    await log_event(
        db=db,
        action=AuditAction.GROUP_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user_group",
        target_id=group.id,
        target_label=group.name,
        metadata={"member_ids": member_ids}
    )
    return await get_group(group.id, current_user, db)


@router.get("/{group_id}", response_model=UserGroupDetailResponse)
async def get_group(
    group_id: int = Path(..., description="User group ID"),
    current_user: dict = Depends(require_permission("view-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Group with its members."""
    group = await get_group_or_404(db, group_id)
    result = await db.execute(
        select(User, group_user.c.added_by, group_user.c.added_at)
        .join(group_user, group_user.c.user_id == User.id)
        .where(group_user.c.user_group_id == group.id)
        .order_by(User.name)
    )
    members = [
        GroupMember(id=user.id, name=user.name, email=user.email, added_by=added_by, added_at=added_at)
        for user, added_by, added_at in result.all()
    ]
    return UserGroupDetailResponse(**UserGroupResponse.model_validate(group).model_dump(), members=members)


@router.put("/{group_id}", response_model=UserGroupDetailResponse)
async def update_group(
    group_data: UserGroupUpdate,
    group_id: int = Path(..., description="User group ID"),
    current_user: dict = Depends(require_permission("edit-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Update a group; ``member_ids`` replaces the membership when sent."""
    group = await get_group_or_404(db, group_id)
    update_data = group_data.model_dump(exclude_unset=True)
    await _validate_group(db, update_data, group_id=group.id)

    member_ids = update_data.pop("member_ids", None)
    for field, value in update_data.items():
        if value is not None or field == "description":
            setattr(group, field, value)

    if member_ids is not None:
        await db.execute(
            delete(group_user).where(
                group_user.c.user_group_id == group.id,
                group_user.c.user_id.not_in(member_ids),
            )
        )
        await _add_members(db, group.id, member_ids, current_user["user_id"])

    await db.commit()
    await db.refresh(group)

    await log_event(
        db=db,
        action=AuditAction.GROUP_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user_group",
        target_id=group.id,
        target_label=group.name,
        metadata={"updated_fields": sorted(update_data.keys()), "member_ids": member_ids}
    )
    return await get_group(group.id, current_user, db)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: int = Path(..., description="User group ID"),
    current_user: dict = Depends(require_permission("delete-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete a group."""
    group = await get_group_or_404(db, group_id)
    group.deleted_at = datetime.now(timezone.utc)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.GROUP_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user_group",
        target_id=group.id,
        target_label=group.name,
    )


@router.post("/{group_id}/members", response_model=AddMembersResponse)
async def add_members(
    request: AddMembersRequest,
    group_id: int = Path(..., description="User group ID"),
    current_user: dict = Depends(require_permission("edit-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Add users to a group. Users already in the group are skipped."""
    group = await get_group_or_404(db, group_id)
    missing = await find_missing_ids(db, User, request.user_ids)
    if missing:
        raise ValidationFailedError({"user_ids": f"Unknown user ids: {missing}"})

    requested = set(request.user_ids)
    added = await _add_members(db, group.id, requested, current_user["user_id"])
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.GROUP_MEMBERS_ADDED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user_group",
        target_id=group.id,
        target_label=group.name,
        metadata={"user_ids": sorted(requested), "added": added}
    )
    return AddMembersResponse(
        added=added,
        skipped=len(requested) - added,
        members_count=len(await _member_ids(db, group.id)),
    )


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    group_id: int = Path(..., description="User group ID"),
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(require_permission("edit-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Remove a user from a group."""
    group = await get_group_or_404(db, group_id)
    result = await db.execute(
        delete(group_user).where(group_user.c.user_group_id == group.id, group_user.c.user_id == user_id)
    )
    if result.rowcount == 0:
        raise ResourceNotFoundError("Group member", user_id)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.GROUP_MEMBER_REMOVED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user_group",
        target_id=group.id,
        target_label=group.name,
        metadata={"user_id": user_id}
    )


@router.get("/{group_id}/available-users", response_model=List[SelectOption])
async def available_users(
    group_id: int = Path(..., description="User group ID"),
    current_user: dict = Depends(require_permission("view-user-groups")),
    db: AsyncSession = Depends(get_db)
):
    """Active users that are not members of the group yet."""
    group = await get_group_or_404(db, group_id)
    members = select(group_user.c.user_id).where(group_user.c.user_group_id == group.id)
    result = await db.execute(
        select(User)
        .where(User.status == UserStatus.ACTIVE, User.id.not_in(members))
        .order_by(User.name)
    )
    return [SelectOption(label=user.name, value=user.id) for user in result.scalars().all()]
