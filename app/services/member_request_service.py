import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.family_access import require_family_access, require_family_admin
from app.database import atomic
from app.models.enums import MemberRequestType, NotificationType, RequestStatus
from app.models.family_member import FamilyMember
from app.models.member_request import MemberRequest
from app.schemas.member_schema import MemberCreate, MemberUpdate
from app.services import member_service
from app.services.notification_service import Notifier, notify_quietly

logger = logging.getLogger(__name__)

_ACTION_WORD = {
    MemberRequestType.ADD_MEMBER: "add",
    MemberRequestType.EDIT_MEMBER: "edit",
    MemberRequestType.DELETE_MEMBER: "delete",
}


def serialize_member_request(request: MemberRequest) -> dict:
    requester = request.requester
    return {
        "id": request.id,
        "family_id": request.family_id,
        "requester_id": request.requester_id,
        "type": request.type,
        "member_data": request.member_data or {},
        "target_member_id": request.target_member_id,
        "message": request.message,
        "status": request.status,
        "created_at": request.created_at,
        "requester": (
            {
                "id": requester.id,
                "name": requester.name,
                "email": requester.email,
                "avatar": requester.avatar,
            }
            if requester
            else None
        ),
    }


def _validated(schema, data: dict, exclude_unset: bool = False, mode: str = "python") -> dict:
    try:
        return schema(**data).model_dump(mode=mode, exclude_unset=exclude_unset)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid member data ({field}): {first['msg']}")


def create_member_request(
    db: Session,
    family_id: str,
    user_id: str,
    type: str,
    member_data: Optional[dict] = None,
    target_member_id: Optional[str] = None,
    message: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> dict:
    family = require_family_access(db, family_id, user_id)

    stored_data = {}
    target = None

    if type == MemberRequestType.ADD_MEMBER:
        if not member_data:
            raise ValidationError("Member data is required for ADD_MEMBER request")
        if not member_data.get("name") or not member_data.get("gender") or member_data.get("generation") is None:
            raise ValidationError("Name, gender, and generation are required")
        stored_data = _validated(MemberCreate, member_data, exclude_unset=True, mode="json")

    elif type in (MemberRequestType.EDIT_MEMBER, MemberRequestType.DELETE_MEMBER):
        if not target_member_id:
            raise ValidationError("Target member ID is required for EDIT/DELETE request")

        target = member_service.find_active_member(db, family_id, target_member_id)
        if not target:
            raise NotFoundError("Target member not found")

        if type == MemberRequestType.EDIT_MEMBER:
            if not member_data:
                raise ValidationError("Member data is required for EDIT_MEMBER request")
            stored_data = _validated(MemberUpdate, member_data, exclude_unset=True, mode="json")

    else:
        raise ValidationError("Invalid request type")

    with atomic(db):
        request = MemberRequest(
            family_id=family_id,
            requester_id=user_id,
            type=type,
            member_data=stored_data,
            target_member_id=target.id if target else None,
            message=message or None,
            status=RequestStatus.PENDING,
        )
        db.add(request)

    db.refresh(request)

    person_name = stored_data.get("name") or (target.name if target else "a member")
    action = _ACTION_WORD[type]
    notify_quietly(
        notifier,
        NotificationType.MEMBER_REQUEST,
        lambda n: n.create_notification(
            user_id=family.admin_id,
            sender_id=user_id,
            family_id=family_id,
            type=NotificationType.MEMBER_REQUEST,
            title=f"Request to {action} a member",
            message=f"{request.requester.name} asked to {action} member {person_name}",
            data={
                "requestId": request.id,
                "requestType": type,
                "personName": person_name,
                "targetMemberId": request.target_member_id,
            },
        ),
    )

    return serialize_member_request(request)


def get_family_member_requests(
    db: Session,
    family_id: str,
    user_id: str,
    status: Optional[str] = None,
) -> list[dict]:
    require_family_admin(db, family_id, user_id, "Only admin can view member requests")

    query = db.query(MemberRequest).filter(MemberRequest.family_id == family_id)
    if status:
        query = query.filter(MemberRequest.status == status)

    return [serialize_member_request(r) for r in query.order_by(MemberRequest.created_at.desc()).all()]


def handle_member_request(
    db: Session,
    family_id: str,
    request_id: str,
    admin_id: str,
    action: str,
    notifier: Optional[Notifier] = None,
) -> dict:
    """
    Rejects the request, or applies its mutation under the same rules as a
    direct admin edit and marks it approved in the same transaction.
    """
    require_family_admin(db, family_id, admin_id, "Only admin can approve/reject member requests")

    request = db.query(MemberRequest).filter(MemberRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Member request not found")
    if request.family_id != family_id:
        raise ValidationError("Request does not belong to this family")
    if request.status != RequestStatus.PENDING:
        raise ConflictError("Request has already been processed")

    member_data = request.member_data or {}
    target = None
    if request.target_member_id:
        target = db.query(FamilyMember).filter(FamilyMember.id == request.target_member_id).first()
    person_name = member_data.get("name") or (target.name if target else "a member")
    action_word = _ACTION_WORD.get(request.type, "change")

    if action == "REJECT":
        with atomic(db):
            request.status = RequestStatus.REJECTED

        _notify_requester(
            notifier, request, admin_id, NotificationType.MEMBER_REJECTED,
            "Member request rejected",
            f'Your request to {action_word} member "{person_name}" was rejected',
            person_name,
        )
        return {"message": "Member request rejected"}

    with atomic(db):
        if request.type == MemberRequestType.ADD_MEMBER:
            data = _validated(MemberCreate, member_data)
            member = member_service.add_member(
                db,
                family_id,
                data,
                link_user_id=request.requester_id if data.get("is_me") else None,
            )
            request.target_member_id = member.id
            result = "Member created successfully"

        elif request.type == MemberRequestType.EDIT_MEMBER:
            if not target or target.is_deleted or target.family_id != family_id:
                raise NotFoundError("Target member not found")
            data = _validated(MemberUpdate, member_data, exclude_unset=True)
            member_service.apply_member_update(db, family_id, target, data)
            result = "Member updated successfully"

        elif request.type == MemberRequestType.DELETE_MEMBER:
            if not target or target.family_id != family_id:
                raise NotFoundError("Target member not found")
            member_service.soft_delete(db, family_id, target, admin_id)
            result = "Member deleted successfully"

        else:
            raise ValidationError("Invalid request type")

        request.status = RequestStatus.APPROVED

    _notify_requester(
        notifier, request, admin_id, NotificationType.MEMBER_APPROVED,
        "Member request approved",
        f'Your request to {action_word} member "{person_name}" was approved',
        person_name,
    )

    logger.info("Member request %s (%s) approved by %s", request.id, request.type, admin_id)
    return {"message": result}


def _notify_requester(notifier, request: MemberRequest, admin_id: str, kind: str, title: str, message: str, person_name: str):
    notify_quietly(
        notifier,
        kind,
        lambda n: n.create_notification(
            user_id=request.requester_id,
            sender_id=admin_id,
            family_id=request.family_id,
            type=kind,
            title=title,
            message=message,
            data={
                "requestId": request.id,
                "requestType": request.type,
                "personName": person_name,
                "targetMemberId": request.target_member_id,
            },
        ),
    )
