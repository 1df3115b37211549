from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class DataSource(str, enum.Enum):
    """Processor / origin of an APL feed"""
    FIS = "fis"
    CONDUENT = "conduent"
    STATE = "state"
    MANUAL = "manual"
    USDA = "usda"


class SyncOutcome(str, enum.Enum):
    """Outcome of a sync run"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class SyncTrigger(str, enum.Enum):
    """What started a sync run"""
    SCHEDULER = "scheduler"
    MANUAL = "manual"
    CLI = "cli"


class ParticipantType(str, enum.Enum):
    """WIC participant categories"""
    PREGNANT = "pregnant"
    POSTPARTUM = "postpartum"
    BREASTFEEDING = "breastfeeding"
    INFANT = "infant"
    CHILD = "child"


class SizeUnit(str, enum.Enum):
    OZ = "oz"
    LB = "lb"
    GAL = "gal"
    G = "g"
    ML = "ml"
    L = "l"
    FL_OZ = "fl_oz"
    CT = "ct"
