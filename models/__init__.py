from .db import db
from .user import User
from .session import Session
from .audit_log import AuditLog
from .developer_profile import DeveloperProfile
from .availability_slot import AvailabilitySlot
from .booking import Booking
from .payment import PaymentTransaction
from .call_session import CallSession
from .review import Review
from .wallet import WalletBalance
