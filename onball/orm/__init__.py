from .base import Base

from .document import LeagueDocument
from .activity_log import LeagueActivityLog
