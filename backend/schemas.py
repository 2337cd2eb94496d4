"""
Request/response models and the closed vocabularies of the intake quiz.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from progress import classify_success


class SessionRecord(BaseModel):
    """One completed practice session. `success` is always derived from `duration`."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    duration: int = Field(ge=0)

    @field_validator("date")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @computed_field
    @property
    def success(self) -> bool:
        return classify_success(self.duration)


# --- Quiz ---


class AgeRange(str, Enum):
    AGE_18_25 = "18-25"
    AGE_26_35 = "26-35"
    AGE_36_45 = "36-45"
    AGE_46_PLUS = "46+"


class RelationshipStatus(str, Enum):
    SINGLE = "single"
    DATING = "dating"
    MARRIED = "married"
    COMPLICATED = "complicated"


class ProblemDuration(str, Enum):
    UNDER_3_MONTHS = "less-3months"
    MONTHS_3_6 = "3-6months"
    MONTHS_6_12 = "6-12months"
    OVER_1_YEAR = "1year+"


class Frequency(str, Enum):
    ALWAYS = "always"
    OFTEN = "often"
    SOMETIMES = "sometimes"
    RARELY = "rarely"


class Solution(str, Enum):
    KEGEL = "kegel"
    BREATHING = "breathing"
    START_STOP = "startstop"
    SQUEEZE = "squeeze"
    MEDICATION = "medication"
    THERAPY = "therapy"
    SUPPLEMENTS = "supplements"
    NONE = "none"


class QuizSubmission(BaseModel):
    age_range: AgeRange
    relationship_status: RelationshipStatus
    problem_duration: ProblemDuration
    frequency: Frequency
    anxiety_level: int = Field(ge=1, le=10)
    tried_solutions: set[Solution] = Field(default_factory=set)
    main_concern: str = ""

    def to_row(self, user_id: Optional[str]) -> dict:
        return {
            "age_range": self.age_range.value,
            "relationship_status": self.relationship_status.value,
            "problem_duration": self.problem_duration.value,
            "frequency": self.frequency.value,
            "anxiety_level": self.anxiety_level,
            "tried_solutions": sorted(s.value for s in self.tried_solutions),
            "main_concern": self.main_concern.strip(),
            "user_id": user_id,
        }


def _options(enum_cls, labels: dict) -> list[dict]:
    return [{"value": member.value, "label": labels[member.value]} for member in enum_cls]


QUIZ_STEPS = [
    {
        "step": 1,
        "field": "age_range",
        "title": "Age range",
        "prompt": "How old are you?",
        "options": _options(AgeRange, {
            "18-25": "18-25 years", "26-35": "26-35 years",
            "36-45": "36-45 years", "46+": "46 years or more",
        }),
    },
    {
        "step": 2,
        "field": "relationship_status",
        "title": "Relationship status",
        "prompt": "What is your current status?",
        "options": _options(RelationshipStatus, {
            "single": "Single", "dating": "Dating",
            "married": "Married", "complicated": "It's complicated",
        }),
    },
    {
        "step": 3,
        "field": "problem_duration",
        "title": "Problem duration",
        "prompt": "How long have you been dealing with this?",
        "options": _options(ProblemDuration, {
            "less-3months": "Less than 3 months", "3-6months": "3 to 6 months",
            "6-12months": "6 to 12 months", "1year+": "More than a year",
        }),
    },
    {
        "step": 4,
        "field": "frequency",
        "title": "Frequency",
        "prompt": "How often does it happen?",
        "options": _options(Frequency, {
            "always": "Always", "often": "Often",
            "sometimes": "Sometimes", "rarely": "Rarely",
        }),
    },
    {
        "step": 5,
        "field": "anxiety_level",
        "title": "Anxiety level",
        "prompt": "How much does it affect your anxiety? (1-10)",
        "range": {"min": 1, "max": 10, "default": 5},
    },
    {
        "step": 6,
        "field": "tried_solutions",
        "title": "Solutions tried",
        "prompt": "Which solutions have you already tried?",
        "multiple": True,
        "options": _options(Solution, {
            "kegel": "Kegel exercises", "breathing": "Breathing techniques",
            "startstop": "Start-stop technique", "squeeze": "Squeeze technique",
            "medication": "Medication", "therapy": "Therapy / counselling",
            "supplements": "Natural supplements", "none": "None yet",
        }),
    },
    {
        "step": 7,
        "field": "main_concern",
        "title": "Main concern",
        "prompt": "What is your biggest concern? (optional)",
        "optional": True,
    },
]


# --- Auth / sessions ---


class Credentials(BaseModel):
    email: str
    password: str


class ConfirmRequest(BaseModel):
    token: str


class UserOut(BaseModel):
    id: str
    email: str
    email_confirmed: bool


class SaveSessionRequest(BaseModel):
    duration: int = Field(ge=0)
