"""
AromaChat Create Recipe - wizard feature module.

Isolated module for the essential-oil recipe wizard. Collects a health
concern and demographics, then walks the user through AI-suggested causes,
symptoms, therapeutic properties and oils.

Steps:
1. Health Concern - free text
2. Demographics - gender, age category, age
3. Causes - pick from AI suggestions
4. Symptoms - pick from AI suggestions
5. Properties - AI therapeutic properties with suggested oils
"""

from .controller import WizardController
from .errors import RecipeApiError
from .navigation import NavigationResult, WizardNavigator
from .persistence import PersistenceMode, WizardPersistence
from .service import RecipeApiClient
from .steps import ApiStep, RecipeStep
from .storage import FileBackend, MemoryBackend, RecipeStorage
from .store import RecipeStore, StateChange, WizardState

__all__ = [
    "ApiStep",
    "FileBackend",
    "MemoryBackend",
    "NavigationResult",
    "PersistenceMode",
    "RecipeApiClient",
    "RecipeApiError",
    "RecipeStep",
    "RecipeStorage",
    "RecipeStore",
    "StateChange",
    "WizardController",
    "WizardNavigator",
    "WizardPersistence",
    "WizardState",
]
