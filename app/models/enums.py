"""String constants stored in the enum-like columns."""


class Gender:
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class MaritalStatus:
    SINGLE = "SINGLE"
    MARRIED = "MARRIED"
    DIVORCED = "DIVORCED"
    WIDOWED = "WIDOWED"


class RequestStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MemberRequestType:
    ADD_MEMBER = "ADD_MEMBER"
    EDIT_MEMBER = "EDIT_MEMBER"
    DELETE_MEMBER = "DELETE_MEMBER"


class LinkOption:
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    NEW = "NEW"


class NotificationType:
    JOIN_REQUEST = "JOIN_REQUEST"
    JOIN_APPROVED = "JOIN_APPROVED"
    JOIN_REJECTED = "JOIN_REJECTED"
    MEMBER_REQUEST = "MEMBER_REQUEST"
    MEMBER_APPROVED = "MEMBER_APPROVED"
    MEMBER_REJECTED = "MEMBER_REJECTED"
    ADMIN_TRANSFER = "ADMIN_TRANSFER"
    NEW_ACHIEVEMENT = "NEW_ACHIEVEMENT"
    BIRTHDAY_REMINDER = "BIRTHDAY_REMINDER"
    ANNIVERSARY_REMINDER = "ANNIVERSARY_REMINDER"
    EVENT_REMINDER = "EVENT_REMINDER"
