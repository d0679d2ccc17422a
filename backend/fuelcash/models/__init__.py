from .stations import Station, StationConfig
from .users import User
from .readings import NozzleReading
from .handovers import CashHandover, HandoverStage
from .settlements import Settlement
from .audit import AuditLogEntry

__all__ = [
    'Station', 'StationConfig',
    'User',
    'NozzleReading',
    'CashHandover', 'HandoverStage',
    'Settlement',
    'AuditLogEntry',
]
