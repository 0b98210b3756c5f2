"""Domain types for the couple budget tracker.

Every enum has exactly one label table below; callers that need a display
name, icon or colour look it up here instead of re-deriving it.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Dict, Optional

from dateutil.relativedelta import relativedelta

from .config import DEFAULT_BUDGETS, DEFAULT_SALAIRES
from .frequency import Frequency, annual_amount, monthly_equivalent, next_occurrence

# ---------------------------------------------------------------------------
# Enums and their label tables
# ---------------------------------------------------------------------------


class TransactionCategory(str, Enum):
    ALIMENTATION = 'alimentation'
    LOYER = 'loyer'
    ABONNEMENTS = 'abonnements'
    HABITATION = 'habitation'
    SORTIES = 'sorties'
    CREDITS = 'credits'
    EPARGNE = 'epargne'
    TRANSPORTS = 'transports'

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]['label']

    @property
    def icon(self) -> str:
        return CATEGORY_LABELS[self]['icon']

    @property
    def color(self) -> str:
        return CATEGORY_LABELS[self]['color']


class Payer(str, Enum):
    PILOU = 'pilou'
    DOUDOU = 'doudou'
    COMMUN = 'commun'

    @property
    def label(self) -> str:
        return PAYER_LABELS[self]


class GoalCategory(str, Enum):
    VACATION = 'vacation'
    EMERGENCY = 'emergency'
    HOME = 'home'
    CAR = 'car'
    EDUCATION = 'education'
    RETIREMENT = 'retirement'
    GENERAL = 'general'
    ELECTRONICS = 'electronics'
    WEDDING = 'wedding'

    @property
    def label(self) -> str:
        return GOAL_CATEGORY_LABELS[self]['label']

    @property
    def icon(self) -> str:
        return GOAL_CATEGORY_LABELS[self]['icon']


class GoalPriority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'

    @property
    def rank(self) -> int:
        """Sort key, most pressing first."""
        return PRIORITY_RANK[self]


class GoalStatus(str, Enum):
    ON_TRACK = 'onTrack'
    BEHIND_SCHEDULE = 'behindSchedule'
    COMPLETED = 'completed'
    EXPIRED = 'expired'

    @property
    def label(self) -> str:
        return GOAL_STATUS_LABELS[self]


CATEGORY_LABELS: Dict[TransactionCategory, Dict[str, str]] = {
    TransactionCategory.ALIMENTATION: {'label': 'Groceries', 'icon': '🥗', 'color': 'green'},
    TransactionCategory.LOYER: {'label': 'Rent', 'icon': '🏠', 'color': 'blue'},
    TransactionCategory.ABONNEMENTS: {'label': 'Subscriptions', 'icon': '📱', 'color': 'orange'},
    TransactionCategory.HABITATION: {'label': 'Home upkeep', 'icon': '🔨', 'color': 'purple'},
    TransactionCategory.SORTIES: {'label': 'Going out', 'icon': '🍽️', 'color': 'red'},
    TransactionCategory.CREDITS: {'label': 'Loans', 'icon': '💳', 'color': 'teal'},
    TransactionCategory.EPARGNE: {'label': 'Savings', 'icon': '💰', 'color': 'indigo'},
    TransactionCategory.TRANSPORTS: {'label': 'Transport', 'icon': '🚗', 'color': 'yellow'},
}

PAYER_LABELS: Dict[Payer, str] = {
    Payer.PILOU: 'Pilou',
    Payer.DOUDOU: 'Doudou',
    Payer.COMMUN: 'Joint account',
}

GOAL_CATEGORY_LABELS: Dict[GoalCategory, Dict[str, str]] = {
    GoalCategory.VACATION: {'label': 'Vacation', 'icon': '🏖️'},
    GoalCategory.EMERGENCY: {'label': 'Emergency fund', 'icon': '🚨'},
    GoalCategory.HOME: {'label': 'Home', 'icon': '🏠'},
    GoalCategory.CAR: {'label': 'Car', 'icon': '🚗'},
    GoalCategory.EDUCATION: {'label': 'Education', 'icon': '🎓'},
    GoalCategory.RETIREMENT: {'label': 'Retirement', 'icon': '👴'},
    GoalCategory.GENERAL: {'label': 'General', 'icon': '💰'},
    GoalCategory.ELECTRONICS: {'label': 'Electronics', 'icon': '📱'},
    GoalCategory.WEDDING: {'label': 'Wedding', 'icon': '💒'},
}

PRIORITY_RANK: Dict[GoalPriority, int] = {
    GoalPriority.URGENT: 0,
    GoalPriority.HIGH: 1,
    GoalPriority.MEDIUM: 2,
    GoalPriority.LOW: 3,
}

GOAL_STATUS_LABELS: Dict[GoalStatus, str] = {
    GoalStatus.ON_TRACK: 'On track',
    GoalStatus.BEHIND_SCHEDULE: 'Behind schedule',
    GoalStatus.COMPLETED: 'Completed',
    GoalStatus.EXPIRED: 'Expired',
}


def new_id() -> str:
    return str(uuid.uuid4())


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` (negative if end is earlier)."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction:
    date: date
    description: str
    category: TransactionCategory
    amount: float
    payer: Payer
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class RecurringExpense:
    description: str
    amount: float
    category: TransactionCategory
    payer: Payer
    frequency: Frequency
    start_date: date
    next_due_date: Optional[date] = None
    is_active: bool = True
    end_date: Optional[date] = None
    last_processed_date: Optional[date] = None
    auto_generate: bool = False
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if self.next_due_date is None:
            object.__setattr__(self, 'next_due_date', next_occurrence(self.frequency, self.start_date))

    def has_ended(self, now: date) -> bool:
        return self.end_date is not None and now > self.end_date

    def is_due(self, now: Optional[date] = None) -> bool:
        now = now or date.today()
        return self.is_active and not self.has_ended(now) and now >= self.next_due_date

    def days_until_due(self, now: Optional[date] = None) -> int:
        now = now or date.today()
        return max((self.next_due_date - now).days, 0)

    @property
    def annual_cost(self) -> float:
        return annual_amount(self.amount, self.frequency)

    @property
    def monthly_cost(self) -> float:
        return monthly_equivalent(self.amount, self.frequency)


@dataclass(frozen=True)
class SavingsGoal:
    name: str
    target_amount: float
    target_date: date
    description: str = ''
    current_amount: float = 0.0
    start_date: date = field(default_factory=date.today)
    category: GoalCategory = GoalCategory.GENERAL
    priority: GoalPriority = GoalPriority.MEDIUM
    is_active: bool = True
    monthly_contribution: float = 0.0
    id: str = field(default_factory=new_id)

    @property
    def progress_percentage(self) -> float:
        if self.target_amount <= 0:
            return 0.0
        return min(self.current_amount / self.target_amount, 1.0)

    @property
    def remaining_amount(self) -> float:
        return max(self.target_amount - self.current_amount, 0.0)

    def months_remaining(self, today: Optional[date] = None) -> int:
        return max(months_between(today or date.today(), self.target_date), 0)

    def required_monthly_contribution(self, today: Optional[date] = None) -> float:
        months = self.months_remaining(today)
        if months <= 0:
            return self.remaining_amount
        return self.remaining_amount / months

    def status(self, today: Optional[date] = None) -> GoalStatus:
        today = today or date.today()
        # Completion wins over expiry on the deadline itself.
        if self.current_amount >= self.target_amount:
            return GoalStatus.COMPLETED
        if today > self.target_date:
            return GoalStatus.EXPIRED
        if self.monthly_contribution >= self.required_monthly_contribution(today):
            return GoalStatus.ON_TRACK
        return GoalStatus.BEHIND_SCHEDULE

    def projected_completion_date(self, today: Optional[date] = None) -> Optional[date]:
        if self.monthly_contribution <= 0 or self.remaining_amount <= 0:
            return None
        months_needed = math.ceil(self.remaining_amount / self.monthly_contribution)
        return (today or date.today()) + relativedelta(months=months_needed)


@dataclass(frozen=True)
class SavingsContribution:
    goal_id: str
    amount: float
    date: date = field(default_factory=date.today)
    note: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Budgets:
    alimentation: float = DEFAULT_BUDGETS['alimentation']
    loyer: float = DEFAULT_BUDGETS['loyer']
    abonnements: float = DEFAULT_BUDGETS['abonnements']
    habitation: float = DEFAULT_BUDGETS['habitation']
    sorties: float = DEFAULT_BUDGETS['sorties']
    credits: float = DEFAULT_BUDGETS['credits']
    epargne: float = DEFAULT_BUDGETS['epargne']
    transports: float = DEFAULT_BUDGETS['transports']

    @property
    def total_amount(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))

    def for_category(self, category: TransactionCategory) -> float:
        return getattr(self, TransactionCategory(category).value)

    def set_for_category(self, category: TransactionCategory, amount: float) -> None:
        setattr(self, TransactionCategory(category).value, float(amount))

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class Salaires:
    pilou: float = DEFAULT_SALAIRES['pilou']
    doudou: float = DEFAULT_SALAIRES['doudou']

    @property
    def total(self) -> float:
        return self.pilou + self.doudou

    def as_dict(self) -> Dict[str, float]:
        return {'pilou': self.pilou, 'doudou': self.doudou}
