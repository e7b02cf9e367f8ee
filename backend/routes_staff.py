import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import auth
import models
from auth import Identity
from auth_service import require_roles
from database import get_db
from schemas import StaffCreate, StaffUpdate

logger = logging.getLogger("StaffRouter")

router = APIRouter(prefix="/staff", tags=["staff"])

# Поля сотрудника, которые дублируются в его учетной записи
_USER_SYNC_FIELDS = ("name", "email", "phone", "avatar")


def staff_to_dict(member: models.StaffMember) -> dict:
    return {
        "id": member.id,
        "userId": member.user_id,
        "name": member.name,
        "email": member.email,
        "role": member.role,
        "department": member.department,
        "phone": member.phone,
        "avatar": member.avatar,
        "status": member.status,
        "hireDate": member.hire_date,
        "createdAt": member.created_at,
    }


def _get_member(db: Session, staff_id: int) -> models.StaffMember:
    member = db.query(models.StaffMember).filter(models.StaffMember.id == staff_id).first()
    if not member:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return member


def _email_taken(db: Session, email: str, member: Optional[models.StaffMember] = None) -> bool:
    staff_query = db.query(models.StaffMember).filter(models.StaffMember.email == email)
    user_query = db.query(models.User).filter(models.User.email == email)
    if member is not None:
        staff_query = staff_query.filter(models.StaffMember.id != member.id)
        if member.user_id is not None:
            user_query = user_query.filter(models.User.id != member.user_id)
    return staff_query.first() is not None or user_query.first() is not None


def _commit(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Email already exists")


@router.get("")
def get_staff(department: Optional[str] = None, status: Optional[str] = None, db: Session = Depends(get_db),
              identity: Identity = Depends(require_roles("admin"))):
    query = db.query(models.StaffMember)
    if department:
        query = query.filter(models.StaffMember.department == department)
    if status:
        query = query.filter(models.StaffMember.status == status)
    members = query.order_by(models.StaffMember.name).all()
    return {"success": True, "data": {"staff": [staff_to_dict(m) for m in members]}}


@router.get("/{staff_id}")
def get_staff_member(staff_id: int, db: Session = Depends(get_db),
                     identity: Identity = Depends(require_roles("admin", "staff"))):
    return {"success": True, "data": {"staff": staff_to_dict(_get_member(db, staff_id))}}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_staff_member(data: StaffCreate, db: Session = Depends(get_db),
                        identity: Identity = Depends(require_roles("admin"))):
    if _email_taken(db, data.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    member = models.StaffMember(
        name=data.name,
        email=data.email,
        role=data.role,
        department=data.department,
        phone=data.phone,
        avatar=data.avatar,
        status=data.status,
        hire_date=data.hire_date,
    )
    if data.password:
        # Учетная запись для входа создается в той же транзакции
        member.user = models.User(
            email=data.email,
            name=data.name,
            password=auth.get_password_hash(data.password),
            role="staff",
            phone=data.phone,
            avatar=data.avatar,
        )
    db.add(member)
    _commit(db)
    db.refresh(member)

    logger.info(f"Staff member {member.email} created (login: {member.user_id is not None})")
    return {"success": True, "message": "Staff member created successfully", "data": {"staff": staff_to_dict(member)}}


@router.put("/{staff_id}")
def update_staff_member(staff_id: int, data: StaffUpdate, db: Session = Depends(get_db),
                        identity: Identity = Depends(require_roles("admin"))):
    member = _get_member(db, staff_id)
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    if "email" in updates and updates["email"] != member.email and _email_taken(db, updates["email"], member):
        raise HTTPException(status_code=400, detail="Email already exists")

    password = updates.pop("password", None)
    for key, value in updates.items():
        setattr(member, key, value)

    user = member.user
    if user is not None:
        for key in _USER_SYNC_FIELDS:
            if key in updates:
                setattr(user, key, updates[key])
        if password:
            user.password = auth.get_password_hash(password)
    elif password:
        member.user = models.User(
            email=member.email,
            name=member.name,
            password=auth.get_password_hash(password),
            role="staff",
            phone=member.phone,
            avatar=member.avatar,
        )

    _commit(db)
    db.refresh(member)
    return {"success": True, "message": "Staff member updated successfully", "data": {"staff": staff_to_dict(member)}}


@router.delete("/{staff_id}")
def delete_staff_member(staff_id: int, db: Session = Depends(get_db),
                        identity: Identity = Depends(require_roles("admin"))):
    member = _get_member(db, staff_id)
    user = member.user
    if user is not None and user.id == identity.user_id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    try:
        db.delete(member)
        # Учетную запись удаляем, только если она служебная
        if user is not None and user.role == "staff":
            db.delete(user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Staff member has related records and cannot be deleted")

    return {"success": True, "message": "Staff member deleted successfully"}
