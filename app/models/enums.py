"""
Status enums stored as their string values
"""

import enum


class InvitationStatus(enum.Enum):
    """Email invitation status enum"""
    SENT = "sent"
    REGISTERED = "registered"
    EXPIRED = "expired"


class ConnectionRequestStatus(enum.Enum):
    """Connection request status enum"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ConnectionMethod(enum.Enum):
    """How a connection came about"""
    QR_INVITATION = "qr_invitation"
    EMAIL_INVITATION = "email_invitation"
    MANUAL = "manual"
