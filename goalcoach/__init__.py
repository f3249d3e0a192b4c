from .models import Message, Persona, Plan, PlanStep, Role, StageDecision
from .stage_controller import StageController
from .normalizer import normalize_plan, default_plan
from .storage import PersistenceGateway
