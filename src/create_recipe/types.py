"""
Recipe Wizard - Data Types.

Immutable models for each wizard step's payload and for the candidate lists
returned by the recipe webhook. Field names follow the webhook's wire format
(snake_case); the camelCase aliases used by the web form are accepted too.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Gender = Literal["male", "female"]


class _Frozen(BaseModel):
    """Base for immutable wizard payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class HealthConcernData(_Frozen):
    """Step 1: free-text health concern."""
    health_concern: str = Field(alias="healthConcern")


class DemographicsData(_Frozen):
    """Step 2: demographics form."""
    gender: Gender
    age_category: str = Field(alias="ageCategory")
    specific_age: int = Field(alias="specificAge", ge=0, le=120)


class PotentialCause(_Frozen):
    """Step 3: a cause suggested for the health concern."""
    cause_name: str
    cause_suggestion: str = ""
    explanation: str = ""


class PotentialSymptom(_Frozen):
    """Step 4: a symptom related to the selected causes."""
    symptom_name: str
    symptom_suggestion: str = ""
    explanation: str = ""


class TherapeuticProperty(_Frozen):
    """Step 5: a therapeutic property addressing causes and symptoms."""
    property_id: str
    property_name: str
    property_name_in_english: str = ""
    description: str = ""
    causes_addressed: str = ""
    symptoms_addressed: str = ""
    relevancy: int = Field(default=1, ge=1, le=5)


class EssentialOil(_Frozen):
    name_english: str
    name_local_language: str = ""
    oil_description: str = ""
    relevancy: int = Field(default=1, ge=1, le=5)


class PropertyOilSuggestions(_Frozen):
    """Oil suggestions grouped under one therapeutic property."""
    property_id: str
    property_name: str
    property_name_in_english: str = ""
    description: str = ""
    suggested_oils: tuple[EssentialOil, ...] = ()
