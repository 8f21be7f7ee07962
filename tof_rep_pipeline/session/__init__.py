from .events import SetCompleted, ValidatedRepsReady
from .reconciler import RepSession, SessionPhase, SessionReport
