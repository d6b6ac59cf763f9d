# Models Package
from .profile import Profile
from .connection_code import ConnectionCode
from .scan_event import ScanEvent
from .email_invitation import EmailInvitation
from .connection_request import ConnectionRequest
from .contact import Contact

__all__ = [
    "Profile",
    "ConnectionCode",
    "ScanEvent",
    "EmailInvitation",
    "ConnectionRequest",
    "Contact"
]
