from .user.user import User
from .trips.trip_model import Trip
from .trips.trip_member import TripMember
from .trips.timeline_item import TimelineItem
from .expense.spend_models import Spend, SpendItem, SpendAssignment
from .expense.settlement_models import Settlement, SettlementPayment
from .choices.choice_models import Choice, ChoiceItem, ChoiceSelection, ChoiceSelectionLine, ChoiceActivity
from .lists.list_models import (
    ListTemplate, TodoItemTemplate, KitItemTemplate,
    ListInstance, TodoItemInstance, KitItemInstance, ItemTick,
)
from .transport.transport_models import TransportOffer, TransportRequirement
from .events.event_log import EventLog
