from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import date, datetime, time


class AuthUser(BaseModel):
    """Identity resolved from a bearer token issued by Supabase."""
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthClientUser(BaseModel):
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    picture: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class UserSyncRequest(BaseModel):
    user: Optional[AuthClientUser] = None


class UpdateUser(BaseModel):
    name: Optional[str] = None
    course: Optional[str] = None
    register_number: Optional[str] = None


class UserSchema(BaseModel):
    id: str
    auth_uuid: Optional[str] = None
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_organiser: bool = False
    course: Optional[str] = None
    register_number: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    user: UserSchema


class UserListResponse(BaseModel):
    users: List[UserSchema]


class UserSyncResponse(BaseModel):
    user: UserSchema
    isNew: bool
    message: str


class EventSchema(BaseModel):
    id: str
    event_id: str
    title: str
    description: Optional[str] = None
    event_date: Optional[date] = None
    event_time: Optional[time] = None
    end_date: Optional[date] = None
    venue: Optional[str] = None
    category: Optional[str] = None
    department_access: List[Any] = []
    claims_applicable: bool = False
    registration_fee: Optional[float] = None
    participants_per_team: Optional[int] = None
    max_participants: Optional[int] = None
    event_image_url: Optional[str] = None
    banner_url: Optional[str] = None
    pdf_url: Optional[str] = None
    rules: List[Any] = []
    schedule: List[Any] = []
    prizes: List[Any] = []
    tags: List[Any] = []
    organizer_email: Optional[str] = None
    organizer_phone: Optional[str] = None
    whatsapp_invite_link: Optional[str] = None
    organizing_dept: Optional[str] = None
    fest: Optional[str] = None
    created_by: Optional[str] = None
    registration_deadline: Optional[datetime] = None
    registration_open: bool = True
    spots_left: Optional[int] = None
    total_participants: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    event: EventSchema


class EventListResponse(BaseModel):
    events: List[EventSchema]


class EventCreatedResponse(BaseModel):
    message: str
    event_id: str
    created_by: Optional[str] = None


class FestSchema(BaseModel):
    id: str
    fest_id: str
    fest_title: str
    description: Optional[str] = None
    opening_date: Optional[date] = None
    closing_date: Optional[date] = None
    fest_image_url: Optional[str] = None
    organizing_dept: Optional[str] = None
    department_access: List[Any] = []
    category: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    event_heads: List[Any] = []
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FestResponse(BaseModel):
    fest: FestSchema


class FestListResponse(BaseModel):
    fests: List[FestSchema]


class FestCreatedResponse(BaseModel):
    message: str
    fest_id: str
    created_by: Optional[str] = None


class Teammate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    register_number: Optional[str] = None


class RegistrationCreate(BaseModel):
    event_id: Optional[str] = None
    user_email: Optional[EmailStr] = None
    registration_type: Optional[str] = None
    individual_name: Optional[str] = None
    individual_email: Optional[EmailStr] = None
    individual_register_number: Optional[str] = None
    team_name: Optional[str] = None
    team_leader_name: Optional[str] = None
    team_leader_email: Optional[EmailStr] = None
    team_leader_register_number: Optional[str] = None
    teammates: Optional[List[Teammate]] = None


class RegistrationSchema(BaseModel):
    id: str
    registration_id: str
    event_id: str
    user_email: Optional[str] = None
    registration_type: str
    individual_name: Optional[str] = None
    individual_email: Optional[str] = None
    individual_register_number: Optional[str] = None
    team_name: Optional[str] = None
    team_leader_name: Optional[str] = None
    team_leader_email: Optional[str] = None
    team_leader_register_number: Optional[str] = None
    teammates: List[Any] = []
    qr_code_generated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegistrationResponse(BaseModel):
    registration: RegistrationSchema


class RegistrationCreatedResponse(BaseModel):
    message: str
    registration: RegistrationSchema


class RegistrationListResponse(BaseModel):
    registrations: List[RegistrationSchema]
    count: int


class QRCodeImageResponse(BaseModel):
    qrCodeImage: str
    eventId: str


class AttendanceUpdateRequest(BaseModel):
    participantIds: Optional[List[str]] = None
    status: Optional[str] = None
    markedBy: Optional[str] = None


class AttendanceUpdateResponse(BaseModel):
    message: str
    updated_count: int
    skipped_ids: List[str] = []


class AttendanceStats(BaseModel):
    total: int
    attended: int
    absent: int
    pending: int
    attendance_rate: float


class AttendanceStatsResponse(BaseModel):
    event_id: str
    stats: AttendanceStats


class ScanRequest(BaseModel):
    qr_data: Union[str, Dict[str, Any], None] = None


class ScanResponse(BaseModel):
    message: str
    already_marked: bool
    registration_id: str
    participant_name: Optional[str] = None
    participant_email: Optional[str] = None
    marked_at: Optional[datetime] = None


class ScanLogSchema(BaseModel):
    id: int
    registration_id: Optional[str] = None
    event_id: str
    scanned_by: Optional[str] = None
    result: str
    message: Optional[str] = None
    scanned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScanLogListResponse(BaseModel):
    logs: List[ScanLogSchema]


NotificationType = Literal["info", "success", "warning", "error"]


class NotificationCreate(BaseModel):
    title: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None
    eventId: Optional[str] = None
    eventTitle: Optional[str] = None
    actionUrl: Optional[str] = None
    recipientEmail: Optional[str] = None


class BulkNotificationCreate(BaseModel):
    title: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None
    eventId: Optional[str] = None
    eventTitle: Optional[str] = None
    actionUrl: Optional[str] = None
    recipientEmails: Optional[List[str]] = None


class NotificationSchema(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationType
    event_id: Optional[str] = None
    event_title: Optional[str] = None
    action_url: Optional[str] = None
    recipient_email: str
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    success: bool = True
    notifications: List[NotificationSchema]
    unread_count: int


class NotificationCreatedResponse(BaseModel):
    success: bool = True
    notification: NotificationSchema
    message: str


class BulkNotificationResponse(BaseModel):
    success: bool = True
    message: str
    count: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UploadResponse(BaseModel):
    message: str
    url: str
    bucket: str


class EventUpdatedResponse(BaseModel):
    message: str
    event: EventSchema
    notified: int = 0


class FestUpdatedResponse(BaseModel):
    message: str
    fest: FestSchema
