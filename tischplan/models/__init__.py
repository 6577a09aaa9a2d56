from tischplan.models.floor import Floor
from tischplan.models.table import Table, TableSize, TableStatus
from tischplan.models.booking import Booking, BookingStatus, BookingType, ConfirmationStatus
from tischplan.models.waiting_list import WaitingListEntry, WaitingStatus
from tischplan.models.notification import Notification, NotificationType
from tischplan.models.activity_log import ActivityLog, ActionType
